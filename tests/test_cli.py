"""
Tests for the command-line interface.
"""

from cli import main


class TestCli:
    def test_list_offers(self, data_dir, capsys):
        assert main(["--data-dir", str(data_dir), "offers"]) == 0

        out = capsys.readouterr().out
        assert "offer-spring-dock" in out
        assert "offer-winter-clearance" in out

    def test_list_inactive_offers(self, data_dir, capsys):
        assert main(["--data-dir", str(data_dir), "offers", "--inactive"]) == 0

        out = capsys.readouterr().out
        assert "offer-winter-clearance" in out
        assert "offer-spring-dock" not in out

    def test_list_no_offers(self, tmp_path, capsys):
        assert main(["--data-dir", str(tmp_path), "offers"]) == 0

        assert "No offers found" in capsys.readouterr().out

    def test_sweep(self, data_dir, capsys):
        assert main(["--data-dir", str(data_dir), "sweep"]) == 0

        out = capsys.readouterr().out
        assert "expire" in out
        assert "activate" in out

    def test_no_command_prints_help(self, capsys):
        assert main([]) == 0

        assert "usage" in capsys.readouterr().out.lower()

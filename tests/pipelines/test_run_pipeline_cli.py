"""Tests for the command-line entry point."""

from run_pipeline import main


class TestMain:
    """Tests for argument handling and exit codes."""

    def test_success(self, synthetic_raw, write_csv):
        """Test exit code 0 on a valid file."""
        path = write_csv(synthetic_raw)

        assert main(['--data', str(path), '--quiet']) == 0

    def test_missing_file(self, tmp_path, capsys):
        """Test exit code 1 and an error message for a missing file."""
        code = main(['--data', str(tmp_path / 'missing.csv'), '--quiet'])

        assert code == 1
        assert 'Dataset not found' in capsys.readouterr().err

    def test_output_dir(self, synthetic_raw, write_csv, tmp_path):
        """Test that --output-dir writes figures."""
        path = write_csv(synthetic_raw)
        out = tmp_path / 'figs'

        assert main(['--data', str(path), '--output-dir', str(out), '--sample', '0.5', '--quiet']) == 0
        assert len(list(out.glob('*.png'))) == 8

"""Unit tests for the player record loader."""

import pytest

from gate_experiment.data import loaders
from gate_experiment.exceptions import DataFormatError


class TestLoadUserRecords:
    """Tests for reading and validating the raw CSV."""

    def test_renames_columns(self, tiny_raw, write_csv):
        """Test that raw headers are mapped to the model names."""
        df = loaders.load_user_records(write_csv(tiny_raw))

        assert list(df.columns) == [
            'user_id', 'group', 'rounds_played', 'retained_day1', 'retained_day7'
        ]
        assert len(df) == 10

    def test_header_case_and_whitespace(self, tiny_raw, write_csv):
        """Test that header names are normalized before validation."""
        shouted = tiny_raw.rename(columns=lambda c: f" {c.upper()} ")
        df = loaders.load_user_records(write_csv(shouted))

        assert 'rounds_played' in df.columns

    def test_extra_columns_dropped(self, tiny_raw, write_csv):
        """Test that columns outside the schema are ignored."""
        df = loaders.load_user_records(write_csv(tiny_raw.assign(country='NZ')))

        assert 'country' not in df.columns

    def test_missing_column(self, tiny_raw, write_csv):
        """Test that a missing required column is reported by name."""
        path = write_csv(tiny_raw.drop(columns=['retention_7']))

        with pytest.raises(DataFormatError, match="retention_7"):
            loaders.load_user_records(path)

    def test_header_only_file(self, tiny_raw, write_csv):
        """Test that a file with a header and no rows is rejected."""
        path = write_csv(tiny_raw.iloc[:0])

        with pytest.raises(DataFormatError, match="no rows"):
            loaders.load_user_records(path)

    def test_empty_file(self, tmp_path):
        """Test that a zero-byte file is rejected."""
        path = tmp_path / 'empty.csv'
        path.write_text('')

        with pytest.raises(DataFormatError, match="empty"):
            loaders.load_user_records(path)

    def test_duplicate_user_ids(self, tiny_raw, write_csv):
        """Test that repeated user ids are rejected."""
        dup = tiny_raw.copy()
        dup.loc[9, 'userid'] = 1

        with pytest.raises(DataFormatError, match="unique"):
            loaders.load_user_records(write_csv(dup))

    def test_missing_file(self, tmp_path):
        """Test that a missing file explains where to download it."""
        with pytest.raises(FileNotFoundError, match="kaggle"):
            loaders.load_user_records(tmp_path / 'nope.csv')

    def test_sampling_is_reproducible(self, synthetic_raw, write_csv):
        """Test that the same seed yields the same sample."""
        path = write_csv(synthetic_raw)

        a = loaders.load_user_records(path, sample_frac=0.1, random_state=7)
        b = loaders.load_user_records(path, sample_frac=0.1, random_state=7)

        assert len(a) == 200
        assert a['user_id'].tolist() == b['user_id'].tolist()

    def test_invalid_sample_frac(self, tiny_raw, write_csv):
        """Test error handling for sample fractions outside (0, 1]."""
        path = write_csv(tiny_raw)

        with pytest.raises(ValueError, match="sample_frac"):
            loaders.load_user_records(path, sample_frac=0)

        with pytest.raises(ValueError, match="sample_frac"):
            loaders.load_user_records(path, sample_frac=1.5)


class TestLoadCookieCats:
    """Tests for the default-location loader."""

    def test_reads_from_cache_dir(self, tiny_raw, write_csv, tmp_path):
        """Test that cookie_cats.csv is resolved inside cache_dir."""
        write_csv(tiny_raw)
        df = loaders.load_cookie_cats(cache_dir=str(tmp_path))

        assert len(df) == 10

    def test_missing_cache_dir(self, tmp_path):
        """Test that an empty cache_dir raises FileNotFoundError."""
        with pytest.raises(FileNotFoundError):
            loaders.load_cookie_cats(cache_dir=str(tmp_path / 'missing'))


class TestDatasetInfo:
    """Tests for the dataset registry."""

    def test_known_dataset(self):
        """Test metadata lookup."""
        info = loaders.get_dataset_info('cookie_cats')

        assert info['size'] == 90189
        assert 'sum_gamerounds' in info['features']

    def test_unknown_dataset(self):
        """Test error handling for an unknown name."""
        with pytest.raises(ValueError, match="Unknown dataset"):
            loaders.get_dataset_info('criteo')

"""Tests for index rewriting and publication."""

from unittest.mock import patch

import pytest

from helm_mirror.errors import FilesystemError, IndexFinalizationError
from helm_mirror.mirror.rewrite import (
    DOWNLOADED_INDEX_NAME,
    finalize_index,
    rewrite_root_url,
)

REPO_URL = "https://charts.example.com"
NEW_ROOT = "https://mirror.local.lan/charts"

INDEX = f"""apiVersion: v1
entries:
  a:
  - version: 1.0.0
    urls:
    - {REPO_URL}/a-1.0.0.tgz
  b:
  - version: 2.0.0
    urls:
    - {REPO_URL}/b-2.0.0.tgz
""".encode()


class TestRewriteRootUrl:
    """Tests for rewrite_root_url function."""

    def test_replaces_every_occurrence(self):
        """All occurrences are replaced."""
        result = rewrite_root_url(INDEX, REPO_URL, NEW_ROOT)
        assert result.count(REPO_URL.encode()) == 0
        assert result.count(NEW_ROOT.encode()) == 2

    def test_no_occurrence(self):
        """Content without the URL is unchanged."""
        assert rewrite_root_url(b"entries: {}\n", REPO_URL, NEW_ROOT) == b"entries: {}\n"


class TestFinalizeIndex:
    """Tests for finalize_index function."""

    def test_rewrite_and_publish(self, tmp_path):
        """The published index points at the new root."""
        (tmp_path / DOWNLOADED_INDEX_NAME).write_bytes(INDEX)

        index_path = finalize_index(tmp_path, REPO_URL, NEW_ROOT)

        assert index_path == tmp_path / "index.yaml"
        content = index_path.read_bytes()
        assert content.count(REPO_URL.encode()) == 0
        assert content.count(NEW_ROOT.encode()) == 2
        assert not (tmp_path / DOWNLOADED_INDEX_NAME).exists()

    def test_publish_without_rewrite(self, tmp_path):
        """Without a new root the index is moved untouched."""
        (tmp_path / DOWNLOADED_INDEX_NAME).write_bytes(INDEX)

        index_path = finalize_index(tmp_path, REPO_URL)

        assert index_path.name == "index.yaml"
        assert index_path.read_bytes() == INDEX

    def test_replaces_existing_index(self, tmp_path):
        """A previous index.yaml is overwritten."""
        (tmp_path / "index.yaml").write_bytes(b"old")
        (tmp_path / DOWNLOADED_INDEX_NAME).write_bytes(INDEX)

        finalize_index(tmp_path, REPO_URL)

        assert (tmp_path / "index.yaml").read_bytes() == INDEX

    def test_missing_download_with_rewrite(self, tmp_path):
        """A missing downloaded index cannot be read for rewriting."""
        with pytest.raises(FilesystemError):
            finalize_index(tmp_path, REPO_URL, NEW_ROOT)

    def test_rename_failure_is_fatal(self, tmp_path):
        """A failing rename raises IndexFinalizationError."""
        with pytest.raises(IndexFinalizationError) as exc_info:
            finalize_index(tmp_path, REPO_URL)
        assert exc_info.value.code == "index_finalization"

    def test_rewrite_write_failure_is_swallowed(self, tmp_path):
        """A failed rewrite still publishes the original index."""
        (tmp_path / DOWNLOADED_INDEX_NAME).write_bytes(INDEX)

        with patch(
            "helm_mirror.mirror.rewrite.write_file",
            side_effect=FilesystemError("disk full"),
        ):
            index_path = finalize_index(tmp_path, REPO_URL, NEW_ROOT)

        assert index_path.read_bytes() == INDEX

import os
import tempfile
import unittest
from pathlib import Path

from lrcmux.scanner import discover_base_names


class TestDiscoverBaseNames(unittest.TestCase):
    def _touch(self, root: Path, *names: str) -> None:
        for n in names:
            (root / n).write_bytes(b"")

    def test_matches_audio_extension_case_insensitively(self):
        with tempfile.TemporaryDirectory() as td:
            root = Path(td)
            self._touch(root, "a.flac", "b.FLAC", "c.Flac", "a.jpg", "a.lrc", "d.mp3", "notes.txt")
            found = discover_base_names(root)

        self.assertEqual(sorted(found), ["a", "b", "c"])
        self.assertEqual(len(found), len(set(found)))

    def test_follows_directory_listing_order(self):
        with tempfile.TemporaryDirectory() as td:
            root = Path(td)
            self._touch(root, "x.flac", "y.flac", "z.flac")
            listing = [os.path.splitext(n)[0] for n in os.listdir(root)]
            self.assertEqual(discover_base_names(root), listing)

    def test_is_not_recursive_and_ignores_directories(self):
        with tempfile.TemporaryDirectory() as td:
            root = Path(td)
            (root / "album").mkdir()
            self._touch(root / "album", "deep.flac")
            (root / "folder.flac").mkdir()
            self._touch(root, "top.flac")
            self.assertEqual(discover_base_names(root), ["top"])

    def test_empty_when_no_audio(self):
        with tempfile.TemporaryDirectory() as td:
            root = Path(td)
            self._touch(root, "a.jpg", "a.lrc", ".flac")
            self.assertEqual(discover_base_names(root), [])

    def test_custom_audio_extension(self):
        with tempfile.TemporaryDirectory() as td:
            root = Path(td)
            self._touch(root, "a.flac", "b.wav")
            self.assertEqual(discover_base_names(root, ".wav"), ["b"])


if __name__ == "__main__":
    unittest.main()

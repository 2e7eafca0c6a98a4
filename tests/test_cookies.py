from __future__ import annotations

import json
import os
import stat
import tempfile
import unittest

from mediarelay.core import CookieFormatError, cookie_file, json_to_netscape
from mediarelay.core.cookies import COOKIE_FILENAME, NETSCAPE_HEADER, to_netscape_text


class JsonToNetscapeTests(unittest.TestCase):
    def test_converts_browser_export(self) -> None:
        raw = json.dumps(
            [
                {
                    "domain": ".example.com",
                    "path": "/",
                    "secure": True,
                    "expirationDate": 1767225599.6,
                    "name": "SID",
                    "value": "abc",
                },
                {
                    "domain": "www.example.com",
                    "path": "/watch",
                    "secure": False,
                    "name": "PREF",
                    "value": "f1=1",
                },
            ]
        )

        text = json_to_netscape(raw)

        self.assertEqual(
            text.splitlines(),
            [
                NETSCAPE_HEADER,
                ".example.com\tTRUE\t/\tTRUE\t1767225600\tSID\tabc",
                "www.example.com\tFALSE\t/watch\tFALSE\t0\tPREF\tf1=1",
            ],
        )
        self.assertTrue(text.endswith("\n"))

    def test_rejects_invalid_json(self) -> None:
        with self.assertRaises(CookieFormatError):
            json_to_netscape("[{not json")

    def test_rejects_non_array(self) -> None:
        with self.assertRaises(CookieFormatError):
            json_to_netscape(json.dumps({"name": "SID"}))

    def test_netscape_text_passes_through(self) -> None:
        raw = f"{NETSCAPE_HEADER}\n.example.com\tTRUE\t/\tFALSE\t0\tSID\tabc\n"

        self.assertEqual(to_netscape_text(raw), raw)


class CookieFileTests(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self._tmp.cleanup)
        self.workdir = os.path.join(self._tmp.name, "job")

    def test_yields_none_without_credentials(self) -> None:
        with cookie_file(None, self.workdir) as path:
            self.assertIsNone(path)
        self.assertFalse(os.path.exists(self.workdir))

    def test_file_is_private_and_removed_afterwards(self) -> None:
        raw = json.dumps([{"domain": ".example.com", "name": "SID", "value": "abc"}])

        with cookie_file(raw, self.workdir) as path:
            assert path is not None
            self.assertEqual(os.path.basename(path), COOKIE_FILENAME)
            self.assertEqual(stat.S_IMODE(os.stat(path).st_mode), 0o600)
            with open(path, encoding="utf-8") as handle:
                self.assertTrue(handle.read().startswith(NETSCAPE_HEADER))

        self.assertFalse(os.path.exists(path))

    def test_file_is_removed_when_execution_fails(self) -> None:
        raw = f"{NETSCAPE_HEADER}\n"
        captured = []

        with self.assertRaises(RuntimeError):
            with cookie_file(raw, self.workdir) as path:
                captured.append(path)
                raise RuntimeError("boom")

        self.assertFalse(os.path.exists(captured[0]))


if __name__ == "__main__":
    unittest.main()

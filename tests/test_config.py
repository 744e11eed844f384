import json
import os
import tempfile
import unittest
from pathlib import Path
from unittest.mock import patch

from catalog_sync.config import DEFAULT_CONFIG_PATH, load_config, resolve_config_path
from catalog_sync.domain.exceptions import ConfigError


class TestLoadConfig(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self._tmp.cleanup)
        self.path = Path(self._tmp.name) / "catalogsync.json"

        # Keep a developer's .env and shell out of the tests
        dotenv = patch("catalog_sync.config.load_dotenv")
        dotenv.start()
        self.addCleanup(dotenv.stop)
        env = patch.dict(os.environ, {}, clear=True)
        env.start()
        self.addCleanup(env.stop)

    def _write(self, data) -> None:
        self.path.write_text(json.dumps(data), encoding="utf-8")

    def test_reads_file_and_fills_defaults(self) -> None:
        self._write({"store": {"database_url": "postgresql+asyncpg://u:p@localhost/catalog"}})

        config = load_config(self.path)

        self.assertEqual(config.store.database_url, "postgresql+asyncpg://u:p@localhost/catalog")
        self.assertEqual(config.store.collections.mods, "mods")
        self.assertEqual(config.store.collections.meta.repositories, "meta/repos")
        self.assertEqual(config.github.token, "")

    def test_environment_overrides_file(self) -> None:
        self._write({"store": {"database_url": "postgresql+asyncpg://file/db"}, "github": {"token": "file"}})
        os.environ.update({"DATABASE_URL": "postgresql+asyncpg://env/db", "GITHUB_TOKEN": "env"})

        config = load_config(self.path)

        self.assertEqual(config.store.database_url, "postgresql+asyncpg://env/db")
        self.assertEqual(config.github.token, "env")

    def test_missing_file_raises(self) -> None:
        with self.assertRaises(ConfigError) as ctx:
            load_config(self.path)

        self.assertIn("Could not find or read config", str(ctx.exception))

    def test_invalid_json_raises(self) -> None:
        self.path.write_text("{not json", encoding="utf-8")

        with self.assertRaises(ConfigError):
            load_config(self.path)

    def test_wrong_shape_raises(self) -> None:
        self._write({"store": {"collections": "mods"}})

        with self.assertRaises(ConfigError):
            load_config(self.path)

    def test_database_url_is_required(self) -> None:
        self._write({})

        with self.assertRaises(ConfigError):
            load_config(self.path)

    def test_path_resolution_order(self) -> None:
        self.assertEqual(resolve_config_path(), DEFAULT_CONFIG_PATH)

        os.environ["CATALOG_SYNC_CONFIG"] = str(self.path)
        self.assertEqual(resolve_config_path(), self.path)
        self.assertEqual(resolve_config_path("/etc/other.json"), Path("/etc/other.json"))

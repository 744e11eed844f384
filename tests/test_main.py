import unittest
from unittest.mock import AsyncMock, MagicMock

from catalog_sync.domain.results import AddResult, CascadeResult, SyncResult, ValidationReport
from catalog_sync.main import build_parser, dispatch


class TestDispatch(unittest.IsolatedAsyncioTestCase):
    def setUp(self) -> None:
        self.service = MagicMock()
        self.parser = build_parser()

    async def test_sync_entities_with_check_only(self) -> None:
        self.service.sync_entities = AsyncMock(return_value=SyncResult(kind="mods"))

        code = await dispatch(self.service, self.parser.parse_args(["sync", "mods", "--check"]))

        self.assertEqual(code, 0)
        self.service.sync_entities.assert_awaited_once_with("mods", check_only=True)

    async def test_remove_repository_without_cascade(self) -> None:
        self.service.remove_repository = AsyncMock(return_value=CascadeResult(repository="owner/repo", removed=True))

        code = await dispatch(self.service, self.parser.parse_args(["remove", "repos", "owner/repo", "--no-cascade"]))

        self.assertEqual(code, 0)
        self.service.remove_repository.assert_awaited_once_with("owner/repo", cascade=False, dry_run=False)

    async def test_add_repository_maps_to_the_repositories_list(self) -> None:
        self.service.add_list_entry = AsyncMock(return_value=AddResult(target="owner/repo", added=False))

        code = await dispatch(self.service, self.parser.parse_args(["add", "repos", "owner/repo"]))

        self.assertEqual(code, 1)
        self.service.add_list_entry.assert_awaited_once_with("repositories", "owner/repo")

    async def test_validate_exit_code_follows_report(self) -> None:
        report = ValidationReport(kind="mods")
        self.service.validate = AsyncMock(return_value=report)

        self.assertEqual(await dispatch(self.service, self.parser.parse_args(["validate", "modinfo"])), 0)

"""Verify Alembic migration chain integrity."""

import importlib.util
from pathlib import Path

from herald.db.base import Base
import herald.db.models  # noqa: F401 register all models on Base


VERSIONS_DIR = Path(__file__).resolve().parent.parent / "herald" / "alembic" / "versions"


def _load_migration_modules():
    modules = []
    for path in sorted(VERSIONS_DIR.glob("*.py")):
        if path.name == "__init__.py":
            continue
        spec = importlib.util.spec_from_file_location(path.stem, path)
        mod = importlib.util.module_from_spec(spec)
        spec.loader.exec_module(mod)
        modules.append((path.name, mod))
    return modules


def _load_migrations():
    """Load all migration modules and return list of (filename, revision, down_revision)."""
    return [(name, mod.revision, mod.down_revision) for name, mod in _load_migration_modules()]


def test_no_duplicate_revision_ids():
    migrations = _load_migrations()
    revisions = [rev for _, rev, _ in migrations]
    duplicates = [r for r in revisions if revisions.count(r) > 1]
    assert not duplicates, f"Duplicate revision IDs: {set(duplicates)}"


def test_single_head_linear_chain():
    migrations = _load_migrations()
    down_revs = {rev: down for _, rev, down in migrations}

    all_revs = set(down_revs.keys())
    referenced = {d for d in down_revs.values() if d is not None}
    heads = all_revs - referenced
    assert len(heads) == 1, f"Expected 1 head, found {len(heads)}: {heads}"

    roots = [rev for rev, down in down_revs.items() if down is None]
    assert len(roots) == 1, f"Expected 1 root, found {len(roots)}: {roots}"


def test_every_migration_has_upgrade_and_downgrade():
    for name, mod in _load_migration_modules():
        assert callable(getattr(mod, "upgrade", None)), f"{name} has no upgrade()"
        assert callable(getattr(mod, "downgrade", None)), f"{name} has no downgrade()"


def test_models_have_migrated_tables():
    source = "\n".join(path.read_text() for path in VERSIONS_DIR.glob("*.py"))
    for table in Base.metadata.tables:
        assert f"'{table}'" in source, f"No migration creates table {table}"

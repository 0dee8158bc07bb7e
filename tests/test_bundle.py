import pytest

from bundle import (
    MAX_FILES,
    MAX_PATCH_CHARS,
    TRUNCATION_MARKER,
    BundleBuilder,
    should_include_file,
    trim_patch,
)
from conftest import FakePlatform, make_change_set, make_file
from github_client import PlatformError
from models import Bundle


def test_filters_removed_lock_and_image_files() -> None:
    assert should_include_file(make_file("src/app.py"))
    assert not should_include_file(make_file("src/old.py", status="removed"))
    assert not should_include_file(make_file("poetry.lock"))
    assert not should_include_file(make_file("web/package-lock.json"))
    assert not should_include_file(make_file("docs/diagram.PNG"))
    assert not should_include_file(make_file("docs/spec.pdf"))


def test_trim_patch() -> None:
    assert trim_patch(None) == ""
    assert trim_patch("short") == "short"
    long_patch = "x" * (MAX_PATCH_CHARS + 500)
    trimmed = trim_patch(long_patch)
    assert trimmed.endswith(TRUNCATION_MARKER)
    assert len(trimmed) == MAX_PATCH_CHARS + len(TRUNCATION_MARKER)


def test_bundle_caps_file_count_in_api_order() -> None:
    files = [make_file(f"src/f{i:03}.py") for i in range(MAX_FILES + 20)]
    bundle = BundleBuilder(FakePlatform(files=files)).run()

    assert bundle.stats.files_changed == MAX_FILES + 20
    assert bundle.stats.files_included == MAX_FILES
    assert [d.filename for d in bundle.diffs] == [f.filename for f in files[:MAX_FILES]]


def test_bundle_patches_are_bounded_and_missing_ones_flagged() -> None:
    files = [
        make_file("src/big.py", patch="y" * 50000),
        make_file("assets/blob.bin", patch=None),
        make_file("src/small.py"),
    ]
    bundle = BundleBuilder(FakePlatform(files=files)).run()

    for diff in bundle.diffs:
        assert len(diff.patch) <= MAX_PATCH_CHARS + len(TRUNCATION_MARKER)
    blob = next(d for d in bundle.diffs if d.filename == "assets/blob.bin")
    assert blob.patch_missing is True
    assert blob.patch == ""
    assert bundle.stats.patch_missing_files == ["assets/blob.bin"]


def test_totals_cover_filtered_files() -> None:
    files = [
        make_file("src/a.py", additions=5, deletions=1),
        make_file("src/gone.py", status="removed", additions=0, deletions=40),
        make_file("yarn.lock", additions=300, deletions=200),
    ]
    bundle = BundleBuilder(FakePlatform(files=files)).run()

    assert bundle.stats.files_included == 1
    assert bundle.stats.total_additions == 305
    assert bundle.stats.total_deletions == 241


def test_bundle_metadata_and_json_shape() -> None:
    platform = FakePlatform(change_set=make_change_set(description=None), files=[make_file("a.py")])
    bundle = BundleBuilder(platform).run()

    assert bundle.pr.body == ""
    assert bundle.pr.head_sha == "abc123"
    assert '"headSha": "abc123"' in bundle.to_json()
    assert Bundle.model_validate_json(bundle.to_json()) == bundle


def test_platform_errors_propagate() -> None:
    class Broken(FakePlatform):
        def get_change_set(self):
            raise PlatformError("PR #7 not found in octo-org/service", status=404)

    with pytest.raises(PlatformError):
        BundleBuilder(Broken()).run()

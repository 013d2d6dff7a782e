"""Unit tests for concurrent, collision-free asset materialization."""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

import pytest

from docexport.assets.materializer import AssetMaterializer, select_candidate
from docexport.domain.models import AssetReference, ContentAddress
from docexport.errors import AssetFetchError, AssetFetchErrorKind, FilenameCollisionExhausted

if TYPE_CHECKING:
    from tests.conftest import FakeFetcher

try:
    from hypothesis import given, settings
    from hypothesis import strategies as st
except ModuleNotFoundError:
    _HYPOTHESIS_AVAILABLE = False
else:
    _HYPOTHESIS_AVAILABLE = True


def _asset(
    key: str,
    *,
    version: int = 1,
    block: str = "blk",
    content_type: str = "image/png",
    name: str | None = None,
    filename: str | None = None,
    simple: bool = False,
) -> AssetReference:
    return AssetReference(
        key=key,
        source_url=f"https://cdn.example.org/{key}",
        content_type=content_type,
        address=ContentAddress(project="proj", block=block, version=version),
        explicit_name=name,
        source_filename=filename,
        simple_mode=simple,
    )


async def test_writes_assets_under_base_path_with_preferred_names(
    tmp_path: Path, fake_fetcher: FakeFetcher
) -> None:
    materializer = AssetMaterializer(tmp_path, fetcher=fake_fetcher)
    report = await materializer.materialize(
        {
            "a": _asset("a", name="figure", filename="upload.png"),
            "b": _asset("b", version=2, filename="photo.JPG", content_type="image/jpg"),
            "c": _asset("c", version=3),
        }
    )

    assert report.ok
    assert report.paths == {
        "a": "images/figure.png",
        "b": "images/photo.JPG",
        "c": "images/proj-blk-v3.png",
    }
    assert (tmp_path / "images" / "figure.png").read_bytes() == b"bytes:https://cdn.example.org/a"
    assert materializer.taken == frozenset(report.paths.values())


async def test_taken_name_falls_through_to_next_candidate(
    tmp_path: Path, fake_fetcher: FakeFetcher
) -> None:
    fake_fetcher.delays = {"https://cdn.example.org/second": 0.02}
    materializer = AssetMaterializer(tmp_path, fetcher=fake_fetcher)

    report = await materializer.materialize(
        {
            "first": _asset("first", name="fig.png"),
            "second": _asset("second", version=2, name="fig.png", filename="other.png"),
        }
    )

    assert report.paths == {"first": "images/fig.png", "second": "images/other.png"}


async def test_exhausted_candidates_fail_only_that_asset(
    tmp_path: Path, fake_fetcher: FakeFetcher
) -> None:
    # "early" claims the name that "late" would fall back to.
    fake_fetcher.delays = {"https://cdn.example.org/late": 0.02}
    materializer = AssetMaterializer(tmp_path, fetcher=fake_fetcher)

    report = await materializer.materialize(
        {
            "early": _asset("early", version=1, name="proj-blk-v2.png"),
            "late": _asset("late", version=2),
        }
    )

    assert report.paths == {"early": "images/proj-blk-v2.png"}
    error = report.failures["late"]
    assert isinstance(error, FilenameCollisionExhausted)
    assert error.candidates == ("images/proj-blk-v2.png",)
    with pytest.raises(FilenameCollisionExhausted):
        report.raise_for_failures()


async def test_identical_content_address_resolves_to_same_file(
    tmp_path: Path, fake_fetcher: FakeFetcher
) -> None:
    materializer = AssetMaterializer(tmp_path, fetcher=fake_fetcher)

    report = await materializer.materialize(
        {"one": _asset("one", version=4), "two": _asset("two", version=4)}
    )

    assert report.ok
    assert report.paths == {"one": "images/proj-blk-v4.png", "two": "images/proj-blk-v4.png"}
    assert sorted(p.name for p in (tmp_path / "images").iterdir()) == ["proj-blk-v4.png"]
    assert sum(asset.bytes_written for asset in report.assets) > 0
    assert min(asset.bytes_written for asset in report.assets) == 0


class _RecordingLogger:
    def __init__(self) -> None:
        self.events: list[tuple[str, dict[str, object]]] = []

    def _record(self, event: str, **fields: object) -> None:
        self.events.append((event, fields))

    debug = info = warning = _record


async def test_shared_content_keeps_a_free_explicit_name(
    tmp_path: Path, fake_fetcher: FakeFetcher
) -> None:
    fake_fetcher.delays = {"https://cdn.example.org/b": 0.02}
    logger = _RecordingLogger()
    materializer = AssetMaterializer(tmp_path, fetcher=fake_fetcher, logger=logger)

    report = await materializer.materialize(
        {"a": _asset("a", name="alpha"), "b": _asset("b", name="beta")}
    )

    assert report.paths == {"a": "images/alpha.png", "b": "images/beta.png"}
    assert all(asset.bytes_written > 0 for asset in report.assets)
    summary = dict(logger.events)["assets_materialized"]
    assert summary["written"] == 2
    assert summary["deduplicated"] == 0


async def test_shared_content_is_reused_once_preferred_names_are_taken(
    tmp_path: Path, fake_fetcher: FakeFetcher
) -> None:
    fake_fetcher.delays = {"https://cdn.example.org/b": 0.02}
    logger = _RecordingLogger()
    materializer = AssetMaterializer(tmp_path, fetcher=fake_fetcher, logger=logger)

    report = await materializer.materialize(
        {"a": _asset("a", name="alpha"), "b": _asset("b", name="alpha")}
    )

    assert report.paths == {"a": "images/alpha.png", "b": "images/alpha.png"}
    assert [asset.bytes_written for asset in report.assets][1] == 0
    summary = dict(logger.events)["assets_materialized"]
    assert summary["written"] == 1
    assert summary["deduplicated"] == 1


def test_select_candidate_returns_default_when_exhausted() -> None:
    taken = {"images/alpha.png"}

    assert (
        select_candidate(("alpha",), "png", taken, key="k", default="images/alpha.png")
        == "images/alpha.png"
    )
    assert select_candidate((), "png", taken, key="k", default="images/x.png") == "images/x.png"


async def test_different_content_addresses_never_collide(
    tmp_path: Path, fake_fetcher: FakeFetcher
) -> None:
    materializer = AssetMaterializer(tmp_path, fetcher=fake_fetcher)

    report = await materializer.materialize(
        {"x": _asset("x", block="b1", simple=True), "y": _asset("y", block="b2", simple=True)}
    )

    assert report.paths == {"x": "images/proj-b1-v1.png", "y": "images/proj-b2-v1.png"}


async def test_simple_mode_ignores_explicit_and_source_names(
    tmp_path: Path, fake_fetcher: FakeFetcher
) -> None:
    materializer = AssetMaterializer(tmp_path, fetcher=fake_fetcher, base_path="files")

    report = await materializer.materialize(
        {"a": _asset("a", name="pretty.png", filename="upload.png", simple=True)}
    )

    assert report.paths == {"a": "files/proj-blk-v1.png"}


async def test_unrecognized_content_type_fails_without_fetching_or_aborting_siblings(
    tmp_path: Path, fake_fetcher: FakeFetcher
) -> None:
    materializer = AssetMaterializer(tmp_path, fetcher=fake_fetcher)

    report = await materializer.materialize(
        {
            "odd": _asset("odd", content_type="application/x-docexport-unknown"),
            "fine": _asset("fine", version=2),
        }
    )

    assert report.paths == {"fine": "images/proj-blk-v2.png"}
    error = report.failures["odd"]
    assert isinstance(error, AssetFetchError)
    assert error.kind is AssetFetchErrorKind.UNRECOGNIZED_CONTENT_TYPE
    assert "https://cdn.example.org/odd" not in fake_fetcher.calls


async def test_network_failure_is_typed_asset_error(
    tmp_path: Path, fake_fetcher: FakeFetcher
) -> None:
    fake_fetcher.failures = {"https://cdn.example.org/gone": ConnectionError("HTTP 404")}
    materializer = AssetMaterializer(tmp_path, fetcher=fake_fetcher)

    report = await materializer.materialize({"gone": _asset("gone"), "ok": _asset("ok", version=2)})

    error = report.failures["gone"]
    assert isinstance(error, AssetFetchError)
    assert error.kind is AssetFetchErrorKind.NETWORK
    assert "HTTP 404" in str(error)
    assert (tmp_path / "images" / "proj-blk-v2.png").exists()


async def test_concurrent_claims_of_one_name_stay_unique(
    tmp_path: Path, fake_fetcher: FakeFetcher
) -> None:
    references = {
        f"k{i}": _asset(f"k{i}", version=i, name="shared.png", filename=f"src{i % 2}.png")
        for i in range(12)
    }
    fake_fetcher.delays = {
        ref.source_url: (i % 3) * 0.005 for i, ref in enumerate(references.values())
    }
    materializer = AssetMaterializer(tmp_path, fetcher=fake_fetcher)

    report = await materializer.materialize(references)

    assert report.ok
    paths = list(report.paths.values())
    assert len(paths) == len(set(paths)) == 12
    assert "images/shared.png" in paths
    assert len(list((tmp_path / "images").iterdir())) == 12


async def test_directory_parts_are_stripped_from_names(
    tmp_path: Path, fake_fetcher: FakeFetcher
) -> None:
    materializer = AssetMaterializer(tmp_path / "build", fetcher=fake_fetcher)

    report = await materializer.materialize({"a": _asset("a", name="../../escape.png")})

    assert report.paths == {"a": "images/escape.png"}
    assert not (tmp_path / "escape.png").exists()


def test_select_candidate_skips_empty_entries_and_appends_extension() -> None:
    assert select_candidate(("", "", "proj-b-v1"), "png", set(), key="k") == "images/proj-b-v1.png"
    assert select_candidate(("plot.svg",), "svg", set(), key="k") == "images/plot.svg"


if _HYPOTHESIS_AVAILABLE:
    _NAMES = st.text(alphabet="abcdef", min_size=0, max_size=3)

    @given(
        candidates=st.lists(_NAMES, min_size=1, max_size=5),
        taken_names=st.sets(_NAMES.filter(bool), max_size=6),
    )
    @settings(max_examples=100, derandomize=True, deadline=None)
    def test_property_selection_is_first_free_candidate_or_explicit_failure(
        candidates: list[str], taken_names: set[str]
    ) -> None:
        taken = {f"images/{name}.png" for name in taken_names}
        expected = next(
            (
                f"images/{name}.png"
                for name in candidates
                if name and f"images/{name}.png" not in taken
            ),
            None,
        )

        if expected is None:
            with pytest.raises(FilenameCollisionExhausted):
                select_candidate(tuple(candidates), "png", taken, key="k")
        else:
            assert select_candidate(tuple(candidates), "png", taken, key="k") == expected

else:

    def test_property_selection_is_first_free_candidate_or_explicit_failure() -> None:
        pytest.skip("hypothesis is not installed")

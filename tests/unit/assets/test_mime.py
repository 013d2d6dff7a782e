"""Unit and property tests for content type to extension lookup."""

from __future__ import annotations

import pytest

from docexport.assets.mime import extension_for, known_content_types
from docexport.domain.outcome import Failure, Success
from docexport.errors import AssetFetchError, AssetFetchErrorKind

try:
    from hypothesis import given, settings
    from hypothesis import strategies as st
except ModuleNotFoundError:
    _HYPOTHESIS_AVAILABLE = False
else:
    _HYPOTHESIS_AVAILABLE = True


@pytest.mark.parametrize(
    ("content_type", "expected"),
    [
        ("image/jpg", "jpg"),
        ("image/jpeg", "jpg"),
        ("image/png", "png"),
        ("image/svg+xml", "svg"),
        ("IMAGE/GIF", "gif"),
        ("image/png; charset=binary", "png"),
        ("application/pdf", "pdf"),
    ],
)
def test_known_content_types_map_to_extension(content_type: str, expected: str) -> None:
    assert extension_for(content_type) == Success(expected)


@pytest.mark.parametrize("content_type", ["", "application/x-docexport-unknown", "not a type"])
def test_unmapped_content_type_is_failure_not_exception(content_type: str) -> None:
    result = extension_for(content_type, key="fig9")

    assert isinstance(result, Failure)
    assert isinstance(result.error, AssetFetchError)
    assert result.error.kind is AssetFetchErrorKind.UNRECOGNIZED_CONTENT_TYPE
    assert result.error.key == "fig9"


if _HYPOTHESIS_AVAILABLE:

    @given(content_type=st.sampled_from(known_content_types()))
    @settings(max_examples=50, derandomize=True, deadline=None)
    def test_property_lookup_is_deterministic_for_table_entries(content_type: str) -> None:
        first = extension_for(content_type)
        second = extension_for(content_type.upper())

        assert isinstance(first, Success)
        assert first == second
        assert first.value and "." not in first.value

    @given(suffix=st.text(alphabet="abcdefghijklmnopqrstuvwxyz", min_size=8, max_size=16))
    @settings(max_examples=50, derandomize=True, deadline=None)
    def test_property_unmapped_types_never_yield_an_extension(suffix: str) -> None:
        result = extension_for(f"application/x-docexport-{suffix}")

        assert isinstance(result, Failure)
        assert result.error.kind is AssetFetchErrorKind.UNRECOGNIZED_CONTENT_TYPE

else:

    def test_property_lookup_is_deterministic_for_table_entries() -> None:
        pytest.skip("hypothesis is not installed")

    def test_property_unmapped_types_never_yield_an_extension() -> None:
        pytest.skip("hypothesis is not installed")

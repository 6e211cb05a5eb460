"""
Tests for formatforge.core.resolver module.
"""

import pytest

from formatforge.core.errors import InvalidSelector
from formatforge.core.resolver import is_letter_selector, resolve_selector


class TestLetterSelectors:
    """Tests for drive letter forms."""

    @pytest.mark.parametrize("text", ["E", "E:", "e:\\", "e:/", "  E:  "])
    def test_letter_forms_resolve_to_canonical(self, text: str) -> None:
        selector = resolve_selector(text)
        assert selector.letter == "E:"
        assert selector.device_id is None
        assert selector.target == "E:"

    def test_has_letter(self) -> None:
        assert resolve_selector("f").has_letter is True

    def test_is_letter_selector(self) -> None:
        assert is_letter_selector("G:\\") is True
        assert is_letter_selector("\\\\?\\Volume{abc}\\") is False
        assert is_letter_selector("nonsense") is False


class TestDeviceSelectors:
    """Tests for volume device identifiers."""

    def test_device_id_kept_with_trailing_backslash(self) -> None:
        device_id = "\\\\?\\Volume{0c6f4d4a-1b2c-11ee-9a3b-806e6f6e6963}\\"
        selector = resolve_selector(device_id)
        assert selector.device_id == device_id
        assert selector.letter is None
        assert selector.has_letter is False

    def test_missing_trailing_backslash_added(self) -> None:
        selector = resolve_selector("\\\\?\\Volume{0c6f4d4a-1b2c-11ee-9a3b-806e6f6e6963}")
        assert selector.device_id.endswith("}\\")

    def test_dot_prefix_normalized(self) -> None:
        selector = resolve_selector("\\\\.\\Volume{0c6f4d4a-1b2c-11ee-9a3b-806e6f6e6963}\\")
        assert selector.device_id.startswith("\\\\?\\Volume{")


class TestInvalidSelectors:
    """Tests for rejected input."""

    @pytest.mark.parametrize(
        "text",
        ["", "   ", "EF", "E:\\folder", "1:", "C:\\Windows", "\\\\?\\Volume", "\\\\?\\Harddisk0"],
    )
    def test_rejected(self, text: str) -> None:
        with pytest.raises(InvalidSelector):
            resolve_selector(text)

    def test_invalid_selector_is_value_error(self) -> None:
        with pytest.raises(ValueError):
            resolve_selector("not a volume")

    def test_error_carries_selector(self) -> None:
        with pytest.raises(InvalidSelector) as exc_info:
            resolve_selector("XYZ")
        assert exc_info.value.selector == "XYZ"
        assert "XYZ" in str(exc_info.value)

"""Unit tests for signature normalization and change detection."""
import pytest

from sigsync.core.change_detector import ChangeDetector, needs_update, normalize_signature


DESIRED = "<div style='color: #333;'><b>Ada Lovelace</b><br/>Engineer</div>"


def test_identical_signatures_need_no_update():
    assert needs_update(DESIRED, DESIRED) is False


def test_gmail_requoted_attributes_compare_equal():
    stored = '<div style="color: #333;"><b>Ada Lovelace</b><br>Engineer</div>'
    assert needs_update(stored, DESIRED) is False


def test_entity_encoded_font_names_compare_equal():
    desired = "<span style='font-family: \"Segoe UI\", Arial;'>Ada</span>"
    stored = '<span style="font-family: &quot;Segoe UI&quot;, Arial;">Ada</span>'
    assert needs_update(stored, desired) is False


def test_single_and_double_quoted_font_names_compare_equal():
    a = "<span style=\"font-family: 'Segoe UI', Arial;\">Ada</span>"
    b = '<span style="font-family: &quot;Segoe UI&quot;, Arial;">Ada</span>'
    assert normalize_signature(a) == normalize_signature(b)


def test_whitespace_and_nbsp_ignored():
    stored = "<p>\n  Ada&nbsp;Lovelace  </p>"
    assert needs_update(stored, "<p>Ada Lovelace</p>") is False


@pytest.mark.parametrize("stored", ["", None, "<p>Grace Hopper</p>", "<p>Ada Lovelace, PhD</p>"])
def test_different_content_needs_update(stored):
    assert needs_update(stored, "<p>Ada Lovelace</p>") is True


def test_both_empty_need_no_update():
    assert needs_update("", None) is False


def test_normalization_is_idempotent():
    once = normalize_signature(DESIRED)
    assert normalize_signature(once) == once


def test_detector_object_matches_function():
    detector = ChangeDetector()
    assert detector.needs_update("<p>a</p>", "<p>b</p>") is True
    assert detector.needs_update("<p>a</p>", "<p>a</p>") is False


def test_space_between_inline_elements_is_significant():
    """Jane Doe and JaneDoe render differently and must not compare equal."""
    assert needs_update("<span>Jane</span><span>Doe</span>", "<span>Jane</span> <span>Doe</span>") is True
    assert needs_update("<b>Jane</b>Doe | Engineer", "<b>Jane</b> Doe | Engineer") is True


def test_space_runs_between_inline_elements_collapse():
    assert needs_update("<span>Jane</span>\n   <span>Doe</span>", "<span>Jane</span> <span>Doe</span>") is False


def test_whitespace_between_structural_tags_ignored():
    stored = "<table>\n  <tr>\n    <td><img src=\"logo.png\"> <img src=\"badge.png\"></td>\n  </tr>\n</table>"
    desired = "<table><tr><td><img src='logo.png'><img src='badge.png'></td></tr></table>"
    assert needs_update(stored, desired) is False


def test_whitespace_next_to_block_tags_ignored():
    assert needs_update("<div>\n  Ada <br/>\n  Engineer\n</div>", "<div>Ada<br>Engineer</div>") is False


def test_escaped_markup_in_text_differs_from_real_markup():
    assert needs_update("&lt;b&gt;Jane&lt;/b&gt;", "<b>Jane</b>") is True
    assert normalize_signature("&lt;b&gt;Jane&lt;/b&gt;") == "&lt;b&gt;Jane&lt;/b&gt;"


def test_equivalent_text_entities_compare_equal():
    assert needs_update("<p>R&amp;D &#8211; Caf&eacute;</p>", "<p>R&D – Café</p>") is False


def test_escaped_angle_brackets_keep_surrounding_spaces():
    assert needs_update("<p>a &gt; b</p>", "<p>a&gt;b</p>") is True

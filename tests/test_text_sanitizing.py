from tikprofil.utils.text import digits_only, full_sanitize, sanitize_string, strip_html


def test_escaped_markup_is_not_decoded_back_into_tags():
    escaped = "&lt;img src=x onerror=alert(1)&gt;"

    assert "<img" not in strip_html(escaped)
    assert "<img" not in full_sanitize(escaped)
    assert "onerror=" not in full_sanitize(escaped)


def test_script_blocks_and_tags_are_removed():
    assert full_sanitize("  Kapı   3 <script>alert(1)</script> ") == "Kapı 3"
    assert full_sanitize('<a href="javascript:alert(1)">tıkla</a>') == "tıkla"


def test_script_protocols_are_removed_only_as_whole_words():
    assert full_sanitize("Metadata: kapı 3") == "Metadata: kapı 3"
    assert sanitize_string("javascript:alert(1)") == "alert(1)"
    assert sanitize_string("Adres DATA: yok") == "Adres  yok"
    assert full_sanitize("Adres DATA: yok") == "Adres yok"


def test_digits_only():
    assert digits_only("0532 123 45 67") == "05321234567"
    assert digits_only(None) == ""

from input_sanitizer import InputSanitizer, nl2br


def test_inspect_flags_script_and_sql():
    sanitizer = InputSanitizer()
    rules = {threat.rule_id for threat in sanitizer.inspect("<script>alert(1)</script>")}
    assert rules == {"script-injection"}
    rules = {threat.rule_id for threat in sanitizer.inspect("1' OR '1'='1")}
    assert "sql-injection" in rules
    assert sanitizer.inspect("Calls received after 9pm") == []
    assert sanitizer.inspect(None) == []


def test_inspect_many_collects_every_value():
    sanitizer = InputSanitizer()
    threats = sanitizer.inspect_many(["../../etc/passwd", "fine", "; rm -rf /"])
    assert [threat.category for threat in threats] == ["path_traversal", "command_injection"]


def test_clean_text_strips_markup_and_truncates():
    assert InputSanitizer.clean_text("<b>Hello</b>   world") == "Hello world"
    assert InputSanitizer.clean_text("abcdef", 3) == "abc"
    assert InputSanitizer.clean_text(None) == ""


def test_clean_html_keeps_rich_text_subset():
    cleaned = InputSanitizer.clean_html('<p onclick="x()">Hi <strong>there</strong><script>bad()</script></p>')
    assert cleaned.startswith("<p>Hi <strong>there</strong>")
    assert "<script>" not in cleaned
    assert "onclick" not in cleaned


def test_nl2br_breaks_lines_and_links_urls():
    rendered = str(nl2br("P.O. Box 1\nSee https://example.com"))
    assert "P.O. Box 1<br>" in rendered
    assert 'href="https://example.com"' in rendered
    assert 'target="_blank"' in rendered
    assert str(nl2br(None)) == ""

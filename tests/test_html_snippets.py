from utils.html_snippets import endpoint_info_page, toast_page


class TestToastPage:
    def test_alert_only_when_toast_is_not_rendered(self):
        page = toast_page("Form submitted successfully", success=True)

        assert "toast.getClientRects().length === 0" in page
        assert "offsetParent" not in page
        assert 'alert("Form submitted successfully")' in page

    def test_message_is_escaped_in_markup_and_script(self):
        page = toast_page("</script><b>x</b>", success=False, return_to_referrer=False)

        assert "&lt;/script&gt;&lt;b&gt;x&lt;/b&gt;" in page
        assert "<\\/script><b>x<\\/b>" in page
        assert "document.referrer" not in page

    def test_return_to_referrer(self):
        assert "window.location.replace(document.referrer)" in toast_page("ok", success=True)


def test_endpoint_info_page_escapes_values():
    page = endpoint_info_page("<id>", "https://api.formdrop.test/api/f/<id>")

    assert "&lt;id&gt;" in page
    assert "<id>" not in page

import logging

from src.contentful_pipeline.models import ContentTypeConfig
from src.contentful_pipeline.rich_text import flatten, is_block, is_inline, is_text


# --- helpers -----------------------------------------------------------------


def text(value):
    return {"nodeType": "text", "value": value, "marks": [], "data": {}}


def node(node_type, *children, data=None):
    return {"nodeType": node_type, "data": data or {}, "content": list(children)}


def para(*values):
    return node("paragraph", *[text(v) for v in values])


def doc(*children):
    return node("document", *children)


def asset(title="Diagram", url="//images.ctfassets.net/a/diagram.png"):
    return {
        "sys": {"type": "Asset", "id": "asset-1"},
        "fields": {"title": title, "file": {"url": url}},
    }


def entry(entry_id, content_type, **fields):
    return {
        "sys": {
            "type": "Entry",
            "id": entry_id,
            "contentType": {"sys": {"type": "Link", "linkType": "ContentType", "id": content_type}},
        },
        "fields": fields,
    }


def embedded_entry_block(target):
    return node("embedded-entry-block", data={"target": target})


def embedded_asset_block(target):
    return node("embedded-asset-block", data={"target": target})


# --- node predicates ---------------------------------------------------------


def test_node_predicates():
    assert is_text(text("a"))
    assert is_block(para("a"))
    assert is_block(embedded_asset_block(asset()))
    assert is_inline(node("hyperlink", text("a")))
    assert is_inline(node("embedded-entry-inline"))
    assert not is_block(None)
    assert not is_block(text("a"))


# --- divisor rule ------------------------------------------------------------


def test_two_paragraphs_are_separated_by_divisor():
    document = doc(para("Hello"), para("World"))

    assert flatten(document, " ") == "Hello World"


def test_inline_siblings_get_no_divisor():
    """Text and hyperlink spans inside one paragraph are joined directly."""
    paragraph = node(
        "paragraph",
        text("Read "),
        node("hyperlink", text("the guide"), data={"uri": "https://example.com"}),
        text(" first."),
    )

    assert flatten(doc(paragraph), "|") == "Read the guide first."


def test_divisor_depends_only_on_next_sibling_being_a_block():
    document = doc(
        para("A"),
        node("hyperlink", text("B")),
        para("C"),
        text("D"),
        para("E"),
    )

    # A->inline: none, B->block: "|", C->text: none, D->block: "|", E: last
    assert flatten(document, "|") == "AB|CD|E"


def test_nested_lists_flatten_with_divisor_between_items():
    document = doc(
        node(
            "unordered-list",
            node("list-item", para("one")),
            node("list-item", para("two")),
        )
    )

    assert flatten(document, "\n") == "one\ntwo"


def test_empty_children_contribute_nothing():
    document = doc(para(""), node("hr"), para("Only"))

    assert flatten(document, "|") == "Only"


# --- parsing rules -----------------------------------------------------------


def test_embedded_asset_rendered_as_marker():
    document = doc(para("Before"), embedded_asset_block(asset()), para("After"))

    assert flatten(document, "\n") == (
        "Before\n![Diagram](https://images.ctfassets.net/a/diagram.png)\nAfter"
    )


def test_asset_rule_false_skips_asset_node():
    document = doc(para("Before"), embedded_asset_block(asset()), para("After"))
    rules = {"embedded-asset-block": False}

    # the divisor after "Before" comes from the immediate next element,
    # which is the (skipped) asset block
    assert flatten(document, "\n", rules) == "Before\nAfter"


def test_skipped_sibling_still_counts_for_lookahead():
    document = doc(para("A"), embedded_asset_block(asset()), node("hyperlink", text("B")))

    assert flatten(document, "|", {"embedded-asset-block": False}) == "A|B"


def test_rule_false_skips_whole_subtree_of_any_node_type():
    document = doc(para("Keep"), node("blockquote", para("Drop")))

    assert flatten(document, "|", {"blockquote": False}) == "Keep|"


def test_asset_title_defaults_to_asset():
    document = doc(embedded_asset_block(asset(title=None)))

    assert flatten(document) == "![Asset](https://images.ctfassets.net/a/diagram.png)"


def test_asset_without_file_url_is_skipped(caplog):
    broken = {"sys": {"type": "Asset", "id": "asset-2"}, "fields": {"title": "Broken"}}
    document = doc(para("Text"), embedded_asset_block(broken))

    with caplog.at_level(logging.WARNING):
        result = flatten(document, "|")

    assert result == "Text|"
    assert "no file url" in caplog.text


# --- embedded entries --------------------------------------------------------


def test_embedded_entry_with_matching_config_uses_project_fn():
    callout = entry("callout-1", "callout", heading="Note", message="Be careful")
    callout_config = ContentTypeConfig(contentType="callout", fieldsToParse=["fields.heading"])
    calls = []

    def project_fn(target, config):
        calls.append((target["sys"]["id"], config.content_type))
        return "PROJECTED"

    rules = {"embeddedContentTypes": [callout_config]}
    document = doc(para("Intro"), embedded_entry_block(callout))

    assert flatten(document, "\n", rules, project_fn) == "Intro\nPROJECTED"
    assert calls == [("callout-1", "callout")]


def test_embedded_entry_without_matching_config_recurses_into_node():
    callout = entry("callout-1", "callout", heading="Note")
    block = embedded_entry_block(callout)
    block["content"] = [para("fallback children")]

    def project_fn(target, config):
        raise AssertionError("project_fn must not be called without a matching config")

    result = flatten(doc(block), "\n", {"embeddedContentTypes": []}, project_fn)

    assert result == "fallback children"


def test_embedded_inline_entry_inside_paragraph():
    product = entry("product-1", "product", name="Widget")
    config = ContentTypeConfig(contentType="product", fieldsToParse=["fields.name"])
    paragraph = node(
        "paragraph",
        text("Buy "),
        node("embedded-entry-inline", data={"target": product}),
        text(" today"),
    )

    result = flatten(
        doc(paragraph),
        "\n",
        {"embeddedContentTypes": [config]},
        lambda target, cfg: target["fields"]["name"],
    )

    assert result == "Buy Widget today"


def test_entry_rule_false_skips_embedded_entries():
    callout = entry("callout-1", "callout", heading="Note")
    config = ContentTypeConfig(contentType="callout", fieldsToParse=["fields.heading"])
    rules = {"embedded-entry-block": False, "embeddedContentTypes": [config]}

    result = flatten(doc(embedded_entry_block(callout), para("End")), "|", rules, lambda t, c: "X")

    assert result == "End"


def test_embedded_entry_without_sys_is_skipped(caplog):
    document = doc(embedded_entry_block({"fields": {"title": "no sys"}}), para("After"))

    with caplog.at_level(logging.WARNING):
        result = flatten(document, "|")

    assert result == "After"
    assert "has no sys" in caplog.text


def test_project_fn_failure_does_not_abort_siblings():
    callout = entry("callout-1", "callout", heading="Note")
    config = ContentTypeConfig(contentType="callout", fieldsToParse=["fields.heading"])

    def project_fn(target, cfg):
        raise KeyError("boom")

    document = doc(para("Start"), embedded_entry_block(callout), para("End"))

    assert flatten(document, "|", {"embeddedContentTypes": [config]}, project_fn) == "Start|End"


# --- invalid input -----------------------------------------------------------


def test_node_without_content_returns_empty_string(caplog):
    with caplog.at_level(logging.WARNING):
        assert flatten({"nodeType": "document"}) == ""
        assert flatten(None) == ""

    assert "Invalid rich text node" in caplog.text


def test_unknown_node_types_contribute_nothing():
    document = doc(para("A"), {"nodeType": "mystery", "content": [text("?")]}, para("B"))

    assert flatten(document, "|") == "AB"

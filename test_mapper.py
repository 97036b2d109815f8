"""
Tests for HtmlMapper: root resolution, field dispatch, nested models and lists.

Models are declared at module level the way callers would declare them.
All tests are offline; documents are inline HTML strings.
"""

from typing import Annotated, Optional

import pytest
from bs4 import BeautifulSoup
from pydantic import BaseModel, ConfigDict, ValidationError

from html_mapper import (
    Attrs, FieldKind, HtmlMapper, MapperConfig, MappingError, Pick, decode, decode_file, root
)
from html_mapper.schemas import clear_model_specs, get_model_spec


# --- Models ---

@root("div")
class Counter(BaseModel):
    count: Annotated[int, Pick("span.t", kind=FieldKind.INT)] = 0


@root("div")
class MissingCounter(BaseModel):
    count: Annotated[int, Pick("span.missing", kind=FieldKind.INT)] = 0


@root("ul")
class Bullets(BaseModel):
    items: Annotated[list[str], Pick("li")] = []


class Author(BaseModel):
    name: Annotated[str, Pick("span.name")] = ""
    profile: Annotated[Optional[str], Pick("a", attr="href")] = None


@root("article")
class Post(BaseModel):
    title: Annotated[str, Pick("h1")] = ""
    views: Annotated[int, Pick("span.views")] = 0
    rating: Annotated[float, Pick("span.rating")] = 0.0
    published: Annotated[bool, Pick("span.published")] = False
    author: Annotated[Optional[Author], Pick("div.author")] = None
    commenters: Annotated[list[Author], Pick("ul.comments li")] = []
    notes: str = "not bound"


class Page(BaseModel):
    heading: Annotated[str, Pick("h1")] = ""


@root("section.page")
class DetailPage(Page):
    summary: Annotated[str, Pick("p.summary")] = ""


POST_HTML = """
<html><body>
<article>
  <h1>  Mapping   HTML </h1>
  <span class="views">1024</span>
  <span class="rating">4.5</span>
  <span class="published">true</span>
  <div class="author"><span class="name">Ada</span><a href="/u/ada">profile</a></div>
  <ul class="comments">
    <li><span class="name">Ada</span><a href="/u/ada">profile</a></li>
    <li><span class="name">Grace</span></li>
  </ul>
</article>
</body></html>
"""


# --- Root resolution and scalar fields ---

def test_integer_field_from_span():
    """The basic scenario: root div, span.t holds an integer."""
    result = HtmlMapper().decode('<div><span class="t">5</span></div>', Counter)
    assert result.count == 5


def test_missing_field_keeps_default():
    """A selector that matches nothing leaves the field at its default."""
    result = HtmlMapper().decode('<div><span class="t">5</span></div>', MissingCounter)
    assert result.count == 0


def test_unmatched_root_returns_defaults():
    """If the root selector matches nothing, the instance equals a fresh one."""
    mapper = HtmlMapper()
    assert mapper.decode("", Post) == Post()
    assert mapper.decode("<p>no article here</p>", Post) == Post()


def test_full_post():
    """Every kind on one model, including nested and list-of-model fields."""
    post = HtmlMapper().decode(POST_HTML, Post)

    assert post.title == "Mapping HTML"
    assert post.views == 1024
    assert post.rating == 4.5
    assert post.published is True
    assert post.author == Author(name="Ada", profile="/u/ada")
    assert [c.name for c in post.commenters] == ["Ada", "Grace"]
    assert post.commenters[1].profile is None
    assert post.notes == "not bound"


def test_nested_model_same_as_list_item():
    """A nested model decodes the same whether reached directly or via a list."""
    post = HtmlMapper().decode(POST_HTML, Post)
    assert post.author == post.commenters[0]


def test_missing_nested_model_keeps_default():
    html = "<article><h1>Bare</h1></article>"
    post = HtmlMapper().decode(html, Post)
    assert post.title == "Bare"
    assert post.author is None
    assert post.commenters == []


def test_decoding_is_idempotent():
    mapper = HtmlMapper()
    assert mapper.decode(POST_HTML, Post) == mapper.decode(POST_HTML, Post)


def test_inherited_fields_are_populated():
    """Fields declared on a base model are bound too, before the subclass's own."""
    html = '<section class="page"><h1>Docs</h1><p class="summary">Short</p></section>'
    page = HtmlMapper().decode(html, DetailPage)
    assert page.heading == "Docs"
    assert page.summary == "Short"
    assert [f.name for f in get_model_spec(DetailPage).fields] == ["heading", "summary"]


# --- Lists ---

def test_list_of_strings_in_source_order():
    html = "<ul><li>one</li><li>two</li><li>three</li></ul>"
    assert HtmlMapper().decode(html, Bullets).items == ["one", "two", "three"]


def test_empty_list_keeps_default():
    @root("ul")
    class WithFallback(BaseModel):
        items: Annotated[list[str], Pick("li")] = ["nothing"]

    assert HtmlMapper().decode("<ul></ul>", WithFallback).items == ["nothing"]


def test_list_length_matches_matches_with_bad_items():
    """A malformed item becomes the zero value instead of shrinking the list."""
    @root("ol")
    class Scores(BaseModel):
        scores: Annotated[list[int], Pick("li")] = []

    html = "<ol><li>3</li><li>n/a</li><li>7</li></ol>"
    assert HtmlMapper().decode(html, Scores).scores == [3, 0, 7]


def test_list_of_attributes():
    @root("nav")
    class Nav(BaseModel):
        links: Annotated[list[str], Pick("a", attr="href")] = []

    html = '<nav><a href="/a">A</a><a>no href</a><a href="/c">C</a></nav>'
    assert HtmlMapper().decode(html, Nav).links == ["/a", "", "/c"]


def test_list_items_reading_their_own_node():
    """An empty selector on an item model reads the matched item itself."""
    class Row(BaseModel):
        row_id: Annotated[str, Pick("", attr="data-id")] = ""
        label: Annotated[str, Pick("", attr=Attrs.OWN_TEXT)] = ""

    @root("div.table")
    class Table(BaseModel):
        rows: Annotated[list[Row], Pick("div.row")] = []

    html = ('<div class="table">'
            '<div class="row" data-id="r1">first <b>bold</b></div>'
            '<div class="row" data-id="r2">second</div>'
            '</div>')
    table = HtmlMapper().decode(html, Table)
    assert [r.row_id for r in table.rows] == ["r1", "r2"]
    assert [r.label for r in table.rows] == ["first", "second"]


# --- Inputs ---

def test_parsed_document_input():
    soup = BeautifulSoup('<div><span class="t">42</span></div>', "html5lib")
    assert HtmlMapper().decode(soup, Counter).count == 42


def test_lxml_parser():
    mapper = HtmlMapper(config=MapperConfig(parser="lxml"))
    assert mapper.decode(POST_HTML, Post) == HtmlMapper().decode(POST_HTML, Post)


def test_bytes_use_declared_charset():
    @root("div")
    class Word(BaseModel):
        word: Annotated[str, Pick("span")] = ""

    raw = b'<html><head><meta charset="iso-8859-1"></head><body><div><span>caf\xe9</span></div></body></html>'
    assert HtmlMapper().decode(raw, Word).word == "café"


def test_decode_file(tmp_path):
    path = tmp_path / "list.html"
    path.write_text("<ul><li>a</li><li>b</li></ul>", encoding="utf-8")
    assert decode_file(path, Bullets).items == ["a", "b"]


def test_module_level_decode():
    assert decode('<div><span class="t">9</span></div>', Counter).count == 9


def test_unsupported_source_type():
    with pytest.raises(MappingError):
        HtmlMapper().decode(12345, Counter)


# --- Fatal errors ---

def test_missing_root_selector_is_fatal():
    class NoRoot(BaseModel):
        title: Annotated[str, Pick("h1")] = ""

    with pytest.raises(MappingError) as exc_info:
        HtmlMapper().decode("<h1>x</h1>", NoRoot)
    assert exc_info.value.target == "NoRoot"


def test_required_field_means_no_no_arg_constructor():
    @root("div")
    class NeedsArgs(BaseModel):
        title: Annotated[str, Pick("h1")]

    with pytest.raises(MappingError) as exc_info:
        HtmlMapper().decode("<div><h1>x</h1></div>", NeedsArgs)
    assert "No-args constructor" in exc_info.value.message
    assert isinstance(exc_info.value.__cause__, ValidationError)


def test_constructor_failure_is_fatal_even_without_root_match():
    @root("div")
    class Exploding(BaseModel):
        title: Annotated[str, Pick("h1")] = ""

        def model_post_init(self, __context):
            raise RuntimeError("boom")

    with pytest.raises(MappingError) as exc_info:
        HtmlMapper().decode("<p>no div</p>", Exploding)
    assert exc_info.value.__cause__ is not None


def test_unsupported_field_type_is_fatal():
    @root("div")
    class Weird(BaseModel):
        title: Annotated[str, Pick("h1")] = ""
        extra: Annotated[dict, Pick("span")] = {}

    with pytest.raises(MappingError, match="not supported"):
        HtmlMapper().decode("<div><h1>x</h1></div>", Weird)


def test_untyped_list_is_fatal():
    @root("ul")
    class Untyped(BaseModel):
        items: Annotated[list, Pick("li")] = []

    with pytest.raises(MappingError, match="not supported"):
        HtmlMapper().decode("<ul><li>a</li></ul>", Untyped)


def test_kind_override_must_fit_annotation():
    @root("div")
    class Mismatch(BaseModel):
        title: Annotated[str, Pick("h1", kind=FieldKind.INT)] = ""

    with pytest.raises(MappingError):
        HtmlMapper().decode("<div><h1>x</h1></div>", Mismatch)


def test_invalid_selector_is_fatal():
    @root("div")
    class BadSelector(BaseModel):
        title: Annotated[str, Pick("h1[[")] = ""

    with pytest.raises(MappingError, match="Invalid CSS selector"):
        HtmlMapper().decode("<div><h1>x</h1></div>", BadSelector)


def test_frozen_model_is_fatal_once_a_value_is_found():
    @root("div")
    class Frozen(BaseModel):
        model_config = ConfigDict(frozen=True)
        title: Annotated[str, Pick("h1")] = ""

    assert HtmlMapper().decode("<p>nothing</p>", Frozen) == Frozen()
    with pytest.raises(MappingError):
        HtmlMapper().decode("<div><h1>x</h1></div>", Frozen)


def test_mapping_error_response():
    class NoRoot(BaseModel):
        pass

    with pytest.raises(MappingError) as exc_info:
        HtmlMapper().decode("<p></p>", NoRoot)
    response = exc_info.value.to_response()
    assert response["error"] == "MappingError"
    assert response["target"] == "NoRoot"


def test_optional_list_items_become_none():
    """Items declared Optional fall back to None rather than the zero value."""
    @root("div")
    class Readings(BaseModel):
        values: Annotated[list[Optional[int]], Pick("span")] = []

    html = "<div><span>x</span><span>2</span></div>"
    assert HtmlMapper().decode(html, Readings).values == [None, 2]


def test_model_spec_cache_can_be_cleared():
    first = get_model_spec(Post)
    assert get_model_spec(Post) is first

    clear_model_specs()
    second = get_model_spec(Post)
    assert second is not first
    assert second == first

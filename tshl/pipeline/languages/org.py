"""Org-mode language configuration."""

from typing import Optional

from tshl.pipeline.query import GrammarSchema

from .base import LanguageConfig

# Named node types of the Org grammar and the fields each one carries
ORG_NODE_FIELDS: dict[str, list[str]] = {
    "document": [],
    "section": [],
    "headline": ["stars", "keyword", "priority", "item", "cookie", "tags"],
    "stars": [],
    "keyword": [],
    "priority": [],
    "item": [],
    "tag_list": [],
    "tag": [],
    "cookie": ["numerator", "denominator"],
    "number": [],
    "plan": [],
    "entry": ["name", "timestamp"],
    "entry_name": [],
    "timestamp": ["date", "day", "time", "repeat", "delay"],
    "date": [],
    "day": [],
    "time": [],
    "repeat": [],
    "delay": [],
    "property_drawer": [],
    "property": ["name", "value"],
    "drawer": ["name", "contents"],
    "drawer_name": [],
    "contents": [],
    "value": [],
    "list": [],
    "listitem": ["bullet", "checkbox", "contents"],
    "bullet": [],
    "checkbox": ["status"],
    "paragraph": [],
    "expr": [],
    "bold": [],
    "italic": [],
    "underline": [],
    "strike_through": [],
    "code": [],
    "verbatim": [],
    "link": ["uri", "description"],
    "uri": [],
    "description": [],
    "block": ["name", "parameter", "contents", "end_name"],
    "directive": ["name", "value"],
    "comment": [],
    "footnote": ["label", "description"],
    "table": [],
    "row": [],
    "cell": [],
    "hr": [],
    "latex_env": [],
}

ORG_HIGHLIGHTS = r"""
; Headlines. Title colours repeat every three levels.
(headline stars: (stars) @org.headline.stars)

((headline stars: (stars) @_stars item: (item) @org.headline.level1)
 (#match? @_stars "^(\\*{3})*\\*$"))

((headline stars: (stars) @_stars item: (item) @org.headline.level2)
 (#match? @_stars "^(\\*{3})*\\*\\*$"))

((headline stars: (stars) @_stars item: (item) @org.headline.level3)
 (#match? @_stars "^(\\*{3})+$"))

((headline keyword: (keyword) @org.keyword.todo)
 (#any-of? @org.keyword.todo "TODO" "NEXT" "WAITING"))

((headline keyword: (keyword) @org.keyword.done)
 (#any-of? @org.keyword.done "DONE" "CANCELLED"))

(headline priority: (priority) @org.priority)
(tag_list (tag) @org.tag)

; Statistics cookies: [50%], [3/7]
(cookie) @org.cookie

((cookie) @org.cookie.percent
 (#match? @org.cookie.percent "\\[\\d*%\\]"))

((cookie
   numerator: (number) @_done
   denominator: (number) @_total) @org.cookie.partial
 (#not-eq? @_done @_total))

((cookie
   numerator: (number) @_done
   denominator: (number) @_total) @org.cookie.complete
 (#eq? @_done @_total))

; Planning and timestamps
(entry name: (entry_name) @org.planning.keyword)
(timestamp "<") @org.timestamp.active
(timestamp "[") @org.timestamp.inactive
(timestamp date: (date) @org.timestamp.date)
(timestamp day: (day) @org.timestamp.day)
(timestamp time: (time) @org.timestamp.time)
(timestamp [(repeat) (delay)] @org.timestamp.modifier)

; Drawers
(property_drawer) @org.drawer
(drawer name: (drawer_name) @org.drawer.name) @org.drawer
(property name: (expr) @org.property.name value: (value)? @org.property.value)

; Lists
(listitem bullet: (bullet) @org.list.bullet)
(listitem . (bullet) . (checkbox) @org.checkbox)

((checkbox status: (_) @org.checkbox.checked)
 (#any-of? @org.checkbox.checked "x" "X"))

((checkbox status: (_) @org.checkbox.partial)
 (#eq? @org.checkbox.partial "-"))

; Blocks, directives, comments
(block
  name: (expr) @org.block.name
  parameter: (expr)* @org.block.parameter
  contents: (contents) @org.block.contents
  end_name: (expr) @org.block.name)
(directive name: (expr) @org.directive.name value: (value)? @org.directive.value)
(comment) @org.comment
(footnote label: (expr) @org.footnote.label)

; Inline markup
(bold) @org.markup.bold
(italic) @org.markup.italic
(underline) @org.markup.underline
(strike_through) @org.markup.strikethrough
[(code) (verbatim)] @org.markup.verbatim
(link uri: (uri) @org.link.uri description: (description)? @org.link.description) @org.link

; Tables and LaTeX
(table) @org.table
(row . (cell) @org.table.first_cell)
(hr) @org.table.rule
(latex_env) @org.latex
"""


class OrgConfig(LanguageConfig):
    """Configuration for Org-mode documents."""

    def get_language_name(self) -> str:
        return "org"

    def get_highlight_query(self) -> str:
        return ORG_HIGHLIGHTS

    def get_schema(self) -> Optional[GrammarSchema]:
        return GrammarSchema.from_mapping(ORG_NODE_FIELDS)

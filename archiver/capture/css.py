"""CSS security processing for captured stylesheets.

Three independent stages, each tolerant of partial failure:

``rewrite_asset_urls``
    Every ``url(...)`` is resolved against the page URL.  ``https`` fonts and
    images on untrusted hosts are routed through the asset proxy; trusted CDNs
    and premium font hosts are left alone; anything else becomes absolute.

``CssSecurityProcessor.validate``
    Parses the stylesheet with error recovery (invalid rules dropped, comments
    removed, whitespace collapsed), bounded by a timeout.  Oversized input,
    a timeout or an error all fall back to the input unchanged.

``scope_stylesheet``
    Rewrites every selector so the stylesheet can only match inside the
    ``.archive-mode`` wrapper.  ``html``/``body``/``:root`` become
    zero-specificity ``:where(.archive-mode-html|body)`` and their rules are
    wrapped in a cascade layer, so they never outrank the host page.

All three work on tinycss2 token trees; selectors are split into components
and rebuilt, never patched as text.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

import tinycss2
from tinycss2 import ast

from archiver.config import settings
from archiver.capture.urls import build_proxy_url, resolve_url
from archiver.proxy.assets import AssetType, classify_asset
from archiver.security.trust import is_premium_font_host, is_trusted, matches_any

logger = logging.getLogger(__name__)

ARCHIVE_CLASS = "archive-mode"
ARCHIVE_HTML_CLASS = "archive-mode-html"
ARCHIVE_BODY_CLASS = "archive-mode-body"
ARCHIVE_LAYER = "archive-mode"

_BLOCK_TYPES = {"() block", "[] block", "{} block"}
_COMBINATORS = {">", "+", "~"}
_ROOT_TYPES = {"html": ARCHIVE_HTML_CLASS, "body": ARCHIVE_BODY_CLASS}
_GROUPING_AT_RULES = {
    "media", "supports", "layer", "container", "document", "-moz-document",
    "scope", "starting-style",
}
# @import targets that only ever serve @font-face sheets.
_FONT_STYLESHEET_HOSTS = ("fonts.googleapis.com", "fonts.bunny.net", "use.typekit.net", "p.typekit.net")

Node = Any


# ---------------------------------------------------------------------------
# (a) Asset URL rewriting
# ---------------------------------------------------------------------------

def _css_string(value: str) -> str:
    escaped = value.replace("\\", "\\\\").replace('"', '\\"').replace("\n", "\\a ")
    return f'"{escaped}"'


def _url_function(line: int, column: int, url: str) -> ast.FunctionBlock:
    return ast.FunctionBlock(
        line, column, "url", [ast.StringToken(line, column, url, _css_string(url))]
    )


def _url_argument(function: ast.FunctionBlock) -> Optional[str]:
    args = [a for a in function.arguments if a.type not in ("whitespace", "comment")]
    if len(args) == 1 and args[0].type == "string":
        return args[0].value
    return None


def _asset_target(
    raw_url: str,
    base_url: str,
    asset_proxy_base_url: str,
    decisions: Dict[str, Optional[str]],
) -> Optional[str]:
    """Return the replacement for *raw_url*, or ``None`` to leave it unchanged."""
    url = raw_url.strip()
    if not url or url.startswith(("data:", "#")):
        return None
    try:
        absolute = resolve_url(url, base_url)
    except ValueError:
        logger.warning("[CSS] Invalid asset URL left unmodified: %s", url)
        return None

    if absolute in decisions:
        return decisions[absolute]

    target: Optional[str]
    if is_trusted(absolute) or is_premium_font_host(absolute):
        target = None
    elif not absolute.startswith("https://"):
        # The proxy only fetches https.
        target = absolute
    elif classify_asset(absolute) in (AssetType.FONT, AssetType.IMAGE):
        target = build_proxy_url(asset_proxy_base_url, absolute)
    else:
        target = absolute
    decisions[absolute] = target
    return target


def _rewrite_nodes(
    nodes: Sequence[Node],
    base_url: str,
    asset_proxy_base_url: str,
    decisions: Dict[str, Optional[str]],
) -> List[Node]:
    out: List[Node] = []
    for node in nodes:
        raw: Optional[str] = None
        if node.type == "url":
            raw = node.value
        elif node.type == "function" and node.lower_name == "url":
            raw = _url_argument(node)
        elif node.type == "function":
            node.arguments = _rewrite_nodes(node.arguments, base_url, asset_proxy_base_url, decisions)
        elif node.type in _BLOCK_TYPES:
            node.content = _rewrite_nodes(node.content, base_url, asset_proxy_base_url, decisions)

        if raw is not None:
            target = _asset_target(raw, base_url, asset_proxy_base_url, decisions)
            if target is not None and target != raw:
                node = _url_function(node.source_line, node.source_column, target)
        out.append(node)
    return out


def rewrite_asset_urls(css: str, base_url: str, asset_proxy_base_url: str) -> str:
    """Rewrite every ``url(...)`` in *css* for safe loading from the host page.

    Each absolute URL is classified once; repeated references reuse the
    decision.  A URL that cannot be resolved is logged and left as written.
    """
    if "url(" not in css.lower():
        return css
    decisions: Dict[str, Optional[str]] = {}
    nodes = tinycss2.parse_component_value_list(css)
    rewritten = _rewrite_nodes(nodes, base_url, asset_proxy_base_url, decisions)
    proxied = sum(1 for target in decisions.values() if target and "/api/asset-proxy?" in target)
    logger.debug("[CSS] %d asset URL(s) seen, %d proxied", len(decisions), proxied)
    return tinycss2.serialize(rewritten)


# ---------------------------------------------------------------------------
# (b) Validation / minification
# ---------------------------------------------------------------------------

def _compact(nodes: Sequence[Node]) -> List[Node]:
    """Drop comments and collapse whitespace runs to a single space."""
    out: List[Node] = []
    for node in nodes:
        if node.type == "comment":
            continue
        if node.type == "whitespace":
            if out and out[-1].type != "whitespace":
                out.append(ast.WhitespaceToken(node.source_line, node.source_column, " "))
            continue
        if node.type == "function":
            node.arguments = _compact(node.arguments)
        elif node.type in _BLOCK_TYPES:
            node.content = _compact(node.content)
        out.append(node)
    while out and out[-1].type == "whitespace":
        out.pop()
    return out


def _compact_text(nodes: Sequence[Node]) -> str:
    return tinycss2.serialize(_compact(nodes)).strip()


def _at_rule_head(rule: ast.AtRule, prelude: str) -> str:
    return f"@{rule.at_keyword} {prelude}" if prelude else f"@{rule.at_keyword}"


def minify_css(css: str) -> str:
    """Parse *css* with error recovery and return a compact serialization.

    Rules the parser rejects are dropped; everything else is preserved.
    """
    parts: List[str] = []
    dropped = 0
    for rule in tinycss2.parse_stylesheet(css, skip_comments=True, skip_whitespace=True):
        if rule.type == "error":
            dropped += 1
        elif rule.type == "qualified-rule":
            parts.append(f"{_compact_text(rule.prelude)}{{{_compact_text(rule.content)}}}")
        elif rule.type == "at-rule":
            head = _at_rule_head(rule, _compact_text(rule.prelude))
            if rule.content is None:
                parts.append(f"{head};")
            else:
                parts.append(f"{head}{{{_compact_text(rule.content)}}}")
    if dropped:
        logger.info("[CSS] Dropped %d invalid rule(s) during validation", dropped)
    return "\n".join(parts)


# ---------------------------------------------------------------------------
# (c) Selector scoping
# ---------------------------------------------------------------------------

@dataclass
class SelectorComponent:
    """One simple selector, pseudo or combinator of a complex selector.

    ``kind`` is one of ``type``, ``universal``, ``class``, ``id``,
    ``attribute``, ``pseudo-class``, ``pseudo-element``, ``nesting``,
    ``combinator`` or ``other``.  Combinator names are ``" "``, ``>``,
    ``+`` or ``~``.
    """

    kind: str
    name: str = ""
    tokens: List[Node] = field(default_factory=list)

    def serialize(self) -> str:
        if self.kind == "combinator":
            return " " if self.name == " " else f" {self.name} "
        return tinycss2.serialize(self.tokens)


def _literal(token: Optional[Node], value: str) -> bool:
    return token is not None and token.type == "literal" and token.value == value


def parse_selector(tokens: Sequence[Node]) -> List[SelectorComponent]:
    """Split one complex selector's tokens into :class:`SelectorComponent` s."""
    toks = [t for t in tokens if t.type != "comment"]
    components: List[SelectorComponent] = []
    pending_space = False
    i, n = 0, len(toks)
    while i < n:
        tok = toks[i]
        if tok.type == "whitespace":
            pending_space = True
            i += 1
            continue
        if tok.type == "literal" and tok.value in _COMBINATORS:
            components.append(SelectorComponent("combinator", tok.value, [tok]))
            pending_space = False
            i += 1
            continue
        if pending_space and components and components[-1].kind != "combinator":
            components.append(SelectorComponent("combinator", " "))
        pending_space = False

        nxt = toks[i + 1] if i + 1 < n else None
        if _literal(tok, ".") and nxt is not None and nxt.type == "ident":
            components.append(SelectorComponent("class", nxt.value, [tok, nxt]))
            i += 2
        elif _literal(tok, ":"):
            kind, width = "pseudo-class", 2
            if _literal(nxt, ":"):
                kind, width = "pseudo-element", 3
            target = toks[i + width - 1] if i + width - 1 < n else None
            if target is None or target.type not in ("ident", "function"):
                raise ValueError(f"Malformed pseudo selector at line {tok.source_line}")
            name = target.lower_value if target.type == "ident" else target.lower_name
            components.append(SelectorComponent(kind, name, toks[i:i + width]))
            i += width
        elif tok.type == "hash":
            components.append(SelectorComponent("id", tok.value, [tok]))
            i += 1
        elif tok.type == "ident":
            components.append(SelectorComponent("type", tok.lower_value, [tok]))
            i += 1
        elif tok.type == "[] block":
            components.append(SelectorComponent("attribute", "", [tok]))
            i += 1
        elif _literal(tok, "*"):
            components.append(SelectorComponent("universal", "*", [tok]))
            i += 1
        elif _literal(tok, "&"):
            components.append(SelectorComponent("nesting", "&", [tok]))
            i += 1
        else:
            components.append(SelectorComponent("other", "", [tok]))
            i += 1
    return components


def serialize_selector(components: Sequence[SelectorComponent]) -> str:
    return "".join(c.serialize() for c in components).strip()


def _where(class_name: str) -> SelectorComponent:
    return SelectorComponent(
        "pseudo-class", "where", tinycss2.parse_component_value_list(f":where(.{class_name})")
    )


def _class(class_name: str) -> SelectorComponent:
    return SelectorComponent(
        "class", class_name, tinycss2.parse_component_value_list(f".{class_name}")
    )


_ROOT_WHERE = {f":where(.{ARCHIVE_HTML_CLASS})", f":where(.{ARCHIVE_BODY_CLASS})"}


def _is_root_where(component: SelectorComponent) -> bool:
    return (
        component.kind == "pseudo-class"
        and component.name == "where"
        and component.serialize() in _ROOT_WHERE
    )


def scope_selector(
    components: List[SelectorComponent],
) -> Tuple[List[SelectorComponent], bool]:
    """Confine one selector to the archive wrapper.

    Returns the new components and whether the selector is rooted at
    ``:where(.archive-mode-html|body)``, either because ``html``, ``body`` or
    ``:root`` was replaced or because it already started there.  Such rules
    must be layer-wrapped.
    """
    if not components:
        raise ValueError("Empty selector")

    replaced = _is_root_where(components[0])
    out: List[SelectorComponent] = []
    for component in components:
        if component.kind == "type" and component.name in _ROOT_TYPES:
            out.append(_where(_ROOT_TYPES[component.name]))
            replaced = True
        elif component.kind == "pseudo-class" and component.name == "root":
            out.append(_where(ARCHIVE_HTML_CLASS))
            replaced = True
        else:
            out.append(component)
    if replaced:
        return out, True

    first = components[0]
    if first.kind == "class" and first.name == ARCHIVE_CLASS:
        return components, False

    prefix = [_class(ARCHIVE_CLASS)]
    if components[0].kind != "combinator":
        prefix.append(SelectorComponent("combinator", " "))
    return prefix + components, False


def _split_selector_list(prelude: Sequence[Node]) -> List[List[Node]]:
    selectors: List[List[Node]] = [[]]
    for token in prelude:
        if _literal(token, ","):
            selectors.append([])
        else:
            selectors[-1].append(token)
    return selectors


def scope_selector_list(prelude: Sequence[Node]) -> Tuple[str, bool]:
    """Scope every selector in a rule prelude; see :func:`scope_selector`."""
    scoped: List[str] = []
    wrap = False
    for tokens in _split_selector_list(prelude):
        components, replaced = scope_selector(parse_selector(tokens))
        wrap = wrap or replaced
        scoped.append(serialize_selector(components))
    return ", ".join(scoped), wrap


def _scope_style_rule(rule: ast.QualifiedRule, in_archive_layer: bool = False) -> str:
    try:
        selector_text, wrap = scope_selector_list(rule.prelude)
    except Exception as exc:
        logger.warning(
            "[CSS] Could not scope rule at line %s, passing through: %s",
            rule.source_line, exc,
        )
        return rule.serialize()
    text = f"{selector_text}{{{tinycss2.serialize(rule.content)}}}"
    if wrap and not in_archive_layer:
        return f"@layer {ARCHIVE_LAYER} {{{text}}}"
    return text


def _is_archive_layer(rule: ast.AtRule, prelude: str) -> bool:
    return rule.lower_at_keyword == "layer" and prelude == ARCHIVE_LAYER


def _scope_rules(rules: Sequence[Node], in_archive_layer: bool = False) -> List[str]:
    out: List[str] = []
    for rule in rules:
        if rule.type == "qualified-rule":
            out.append(_scope_style_rule(rule, in_archive_layer))
        elif rule.type == "at-rule":
            if rule.lower_at_keyword in _GROUPING_AT_RULES and rule.content is not None:
                inner = tinycss2.parse_rule_list(rule.content, skip_comments=True, skip_whitespace=True)
                prelude = tinycss2.serialize(rule.prelude).strip()
                head = _at_rule_head(rule, prelude)
                layered = in_archive_layer or _is_archive_layer(rule, prelude)
                body = "\n".join(_scope_rules(inner, layered))
                out.append(f"{head} {{{body}}}")
            elif rule.lower_at_keyword == "import":
                target = _import_target(rule)
                if target and matches_any(target, _FONT_STYLESHEET_HOSTS):
                    out.append(rule.serialize())
                else:
                    logger.info("[CSS] Dropped unscoped @import of %s", target or "(unknown)")
            else:
                out.append(rule.serialize())
    return out


def _import_target(rule: ast.AtRule) -> Optional[str]:
    for token in rule.prelude:
        if token.type in ("whitespace", "comment"):
            continue
        if token.type in ("string", "url"):
            return token.value
        if token.type == "function" and token.lower_name == "url":
            return _url_argument(token)
        return None
    return None


def scope_stylesheet(css: str) -> str:
    """Return *css* with every style rule confined to ``.archive-mode``."""
    if not css.strip():
        return ""
    rules = tinycss2.parse_stylesheet(css, skip_comments=True, skip_whitespace=True)
    return "\n".join(_scope_rules(rules))


# ---------------------------------------------------------------------------
# Pipeline
# ---------------------------------------------------------------------------

class CssSecurityProcessor:
    """Runs URL rewriting, validation and scoping off the event loop."""

    def __init__(
        self,
        validation_timeout: float | None = None,
        max_validate_bytes: int | None = None,
    ) -> None:
        self.validation_timeout = (
            settings.css_validation_timeout if validation_timeout is None else validation_timeout
        )
        self.max_validate_bytes = (
            settings.css_max_validate_bytes if max_validate_bytes is None else max_validate_bytes
        )

    async def validate(self, css: str) -> str:
        """Return validated CSS, or *css* itself when validation is skipped or fails."""
        if not css.strip():
            logger.info("[CSS] Empty stylesheet, nothing to validate")
            return ""

        size = len(css.encode("utf-8"))
        if size > self.max_validate_bytes:
            logger.info("[CSS] %d bytes exceeds validation limit, passing through", size)
            return css

        try:
            return await asyncio.wait_for(
                asyncio.to_thread(minify_css, css), timeout=self.validation_timeout
            )
        except asyncio.TimeoutError:
            logger.warning(
                "[CSS] Validation timed out after %.1fs, using original CSS",
                self.validation_timeout,
            )
        except Exception as exc:
            logger.warning("[CSS] Validation failed, using original CSS: %s", exc)
        return css

    async def process(self, css: str, base_url: str, asset_proxy_base_url: str) -> str:
        try:
            rewritten = await asyncio.to_thread(
                rewrite_asset_urls, css, base_url, asset_proxy_base_url
            )
        except Exception as exc:
            logger.warning("[CSS] URL rewrite failed, continuing with original CSS: %s", exc)
            rewritten = css

        validated = await self.validate(rewritten)

        try:
            return await asyncio.to_thread(scope_stylesheet, validated)
        except Exception:
            logger.exception("[CSS] Scoping failed, discarding stylesheet")
            return ""

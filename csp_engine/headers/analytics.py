"""Google Analytics / Tag Manager source injection and loader markup."""

from __future__ import annotations

import html
import json

from csp_engine.models.registry import DirectiveRegistry

# Added to every analytics-aware directive when analytics is on.
ANALYTICS_DOMAINS: tuple[str, ...] = (
    "https://*.googletagmanager.com",
    "https://www.google-analytics.com",
)

# Added on top of ANALYTICS_DOMAINS when Google Signals is also on.
SIGNALS_DOMAINS: tuple[str, ...] = (
    "https://www.googleadservices.com",
    "https://googleads.g.doubleclick.net",
)

ANALYTICS_DIRECTIVES = frozenset({"script-src", "img-src", "connect-src"})

_GTM_SCRIPT_TEMPLATE = """<script{nonce_attr}>
(function(w,d,s,l,i){{w[l]=w[l]||[];w[l].push({{'gtm.start':
new Date().getTime(),event:'gtm.js'}});var f=d.getElementsByTagName(s)[0],
j=d.createElement(s),dl=l!='dataLayer'?'&l='+l:'';j.async=true;j.src=
'https://www.googletagmanager.com/gtm.js?id='+i+dl;var n=d.querySelector('[nonce]');
n&&j.setAttribute('nonce',n.nonce||n.getAttribute('nonce'));f.parentNode.insertBefore(j,f);
}})(window,document,'script','dataLayer',{container_id});
</script>"""

_GTM_NOSCRIPT_TEMPLATE = (
    '<noscript><iframe src="https://www.googletagmanager.com/ns.html?id={container_id}"\n'
    'height="0" width="0" style="display:none;visibility:hidden"></iframe></noscript>'
)


def _dedupe(tokens: list[str]) -> list[str]:
    """Drop exact-match duplicates, keeping first-seen order."""
    seen: set[str] = set()
    result: list[str] = []
    for token in tokens:
        if token not in seen:
            seen.add(token)
            result.append(token)
    return result


def inject_analytics_sources(registry: DirectiveRegistry, directive: str) -> list[str]:
    """Return the directive's base tokens plus any analytics domains.

    Only script-src, img-src and connect-src receive analytics domains.
    Signal domains are added only when analytics itself is enabled.
    """
    directive = directive.lower()
    tokens = registry.directive_value(directive).split()
    if directive in ANALYTICS_DIRECTIVES and registry.enable_google_analytics:
        tokens.extend(ANALYTICS_DOMAINS)
        if registry.enable_google_signals:
            tokens.extend(SIGNALS_DOMAINS)
    return _dedupe(tokens)


def analytics_directive_value(registry: DirectiveRegistry, directive: str) -> str:
    return " ".join(inject_analytics_sources(registry, directive))


def _container_id(registry: DirectiveRegistry | None) -> str:
    if registry is None or not registry.enable_google_analytics:
        return ""
    return registry.google_tag_manager_id.strip()


def google_tag_manager_script(registry: DirectiveRegistry | None, nonce: str | None = None) -> str:
    """Render the inline Tag Manager bootstrap ``<script>``.

    The ``nonce`` attribute is emitted only when nonces are enabled and one
    was supplied. Returns "" when analytics is off or no container id is set.
    """
    container_id = _container_id(registry)
    if not container_id:
        return ""

    nonce_attr = ""
    if registry.enable_nonce and nonce and nonce.strip():
        nonce_attr = f' nonce="{html.escape(nonce.strip(), quote=True)}"'

    # json.dumps yields a quoted JS string literal; "</" is split so the id
    # can never close the surrounding script element.
    js_id = json.dumps(container_id).replace("</", "<\\/")
    return _GTM_SCRIPT_TEMPLATE.format(nonce_attr=nonce_attr, container_id=js_id)


def google_tag_manager_noscript(registry: DirectiveRegistry | None) -> str:
    """Render the ``<noscript>`` iframe fallback for Tag Manager."""
    container_id = _container_id(registry)
    if not container_id:
        return ""
    return _GTM_NOSCRIPT_TEMPLATE.format(container_id=html.escape(container_id, quote=True))

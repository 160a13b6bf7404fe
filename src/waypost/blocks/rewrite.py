"""Server configuration blocks.

``add-rewrite-rule`` appends a marked fragment to the per-directory rewrite
config (``.htaccess`` by default) carrying content-type, CORS and cache
headers plus a rewrite rule: for static strategies the rule stops rewriting
so the web server serves the file; for dynamic strategies it forwards the
path to the application front controller.

``suggest-alternate-config`` writes nothing. It renders nginx ``location``
blocks (or an IIS ``web.config`` rule) for an administrator to install.
"""

from __future__ import annotations

import re
from pathlib import PurePosixPath

from waypost.blocks.base import BaseBlock, BlockContext
from waypost.blocks.files import apply_section, markers_for, revert_section
from waypost.errors import BlockExecutionError
from waypost.models.constants import CORS_ALLOW_HEADERS, DEFAULT_CACHE_CONTROL
from waypost.models.entities import Endpoint
from waypost.models.enums import Approach, BlockAction, BlockId, Capability, PlatformType
from waypost.models.results import BlockResult
from waypost.observability import get_logger
from waypost.utils.paths import resolve_public_path

logger = get_logger(__name__)


def _rule_pattern(path: str) -> str:
    return "^" + re.escape(path.lstrip("/")) + "$"


def _cors_methods(endpoint: Endpoint) -> str:
    methods = list(endpoint.supported_methods)
    if "OPTIONS" not in methods:
        methods.append("OPTIONS")
    return ", ".join(methods)


def render_apache_fragment(
    endpoint: Endpoint, approach: Approach, front_controller: str
) -> str:
    """Body of the rewrite fragment for ``endpoint`` (markers excluded).

    Example:
        >>> endpoint = Endpoint(path="/llms.txt", content_generator=lambda: (b"", ""))
        >>> fragment = render_apache_fragment(endpoint, Approach.STATIC_FILE, "index.php")
        >>> "RewriteRule ^llms\\\\.txt$ - [L]" in fragment
        True
    """
    name = PurePosixPath(endpoint.path).name
    cache_control = endpoint.cache_control or DEFAULT_CACHE_CONTROL
    lines = [
        "<IfModule mod_headers.c>",
        f'    <Files "{name}">',
        f'        Header set Content-Type "{endpoint.effective_content_type}"',
    ]
    if endpoint.cors:
        lines += [
            '        Header set Access-Control-Allow-Origin "*"',
            f'        Header set Access-Control-Allow-Methods "{_cors_methods(endpoint)}"',
            f'        Header set Access-Control-Allow-Headers "{CORS_ALLOW_HEADERS}"',
        ]
    lines += [
        f'        Header set Cache-Control "{cache_control}"',
        "    </Files>",
        "</IfModule>",
        "<IfModule mod_rewrite.c>",
        "    RewriteEngine On",
    ]
    if approach is Approach.STATIC_FILE:
        lines += [
            "    RewriteCond %{REQUEST_FILENAME} -f",
            f"    RewriteRule {_rule_pattern(endpoint.path)} - [L]",
        ]
    else:
        lines += [
            "    RewriteCond %{REQUEST_FILENAME} !-f",
            f"    RewriteRule {_rule_pattern(endpoint.path)} "
            f"/{front_controller.lstrip('/')} [L,QSA]",
        ]
    lines.append("</IfModule>")
    return "\n".join(lines)


def render_nginx_suggestion(endpoint: Endpoint, approach: Approach) -> dict[str, str]:
    """nginx snippets keyed by purpose (static, cors, fallback, caching)."""
    path = endpoint.path
    content_type = endpoint.effective_content_type
    cache_control = endpoint.cache_control or DEFAULT_CACHE_CONTROL
    sections = {
        "static_file_location": "\n".join(
            [
                f"# Serve {path} directly",
                f"location = {path} {{",
                f'    add_header Content-Type "{content_type}";',
                f'    add_header Cache-Control "{cache_control}";',
                "    expires 1h;",
                "}",
            ]
        ),
    }
    if endpoint.cors or "/.well-known/" in path:
        sections["cors_location"] = "\n".join(
            [
                f"# CORS headers for {path}",
                f"location = {path} {{",
                f'    add_header Content-Type "{content_type}";',
                '    add_header Access-Control-Allow-Origin "*";',
                f'    add_header Access-Control-Allow-Methods "{_cors_methods(endpoint)}";',
                f'    add_header Access-Control-Allow-Headers "{CORS_ALLOW_HEADERS}";',
                f'    add_header Cache-Control "{cache_control}";',
                "    if ($request_method = OPTIONS) {",
                "        return 200;",
                "    }",
                "}",
            ]
        )
    sections["application_fallback"] = "\n".join(
        [
            f"# Fall back to the application for {path}",
            f"location = {path} {{",
            "    try_files $uri @application;",
            f'    add_header Content-Type "{content_type}";',
            "}",
            "",
            "location @application {",
            "    rewrite ^.*$ /index.php last;",
            "}",
        ]
    )
    if approach is Approach.STATIC_FILE:
        sections["caching_optimization"] = "\n".join(
            [
                f"# Caching for {path}",
                f"location = {path} {{",
                f'    add_header Cache-Control "{cache_control}";',
                "    expires 1h;",
                "    gzip on;",
                f"    gzip_types {content_type.split(';')[0]};",
                "}",
            ]
        )
    return sections


def render_iis_suggestion(endpoint: Endpoint, approach: Approach) -> dict[str, str]:
    """web.config rule for IIS URL Rewrite."""
    pattern = _rule_pattern(endpoint.path)
    if approach is Approach.STATIC_FILE:
        action = '<action type="None" />'
        conditions = '<add input="{REQUEST_FILENAME}" matchType="IsFile" />'
    else:
        action = '<action type="Rewrite" url="index.php" appendQueryString="true" />'
        conditions = '<add input="{REQUEST_FILENAME}" matchType="IsFile" negate="true" />'
    rule = "\n".join(
        [
            "<system.webServer>",
            "  <rewrite>",
            "    <rules>",
            f'      <rule name="waypost {endpoint.path}" stopProcessing="true">',
            f'        <match url="{pattern}" />',
            f"        <conditions>{conditions}</conditions>",
            f"        {action}",
            "      </rule>",
            "    </rules>",
            "  </rewrite>",
            "</system.webServer>",
        ]
    )
    return {"web_config_rule": rule}


class AddRewriteRuleBlock(BaseBlock):
    """Append a marked rewrite fragment for the endpoint to the rewrite config."""

    block_id = BlockId.ADD_REWRITE_RULE

    def _execute(self, path: str, content: bytes, ctx: BlockContext) -> BlockResult:
        profile = ctx.profile
        if profile.config_rewrite_supported is Capability.NO:
            raise BlockExecutionError(
                self.block_id.value,
                f"rewrite config is not usable on this host ({profile.platform_type.value})",
            )
        target = resolve_public_path(ctx.settings.document_root, ctx.settings.rewrite_config)
        begin, end = markers_for(path)
        body = render_apache_fragment(
            ctx.endpoint,
            ctx.approach or Approach.STATIC_FILE,
            ctx.settings.front_controller,
        )
        return apply_section(self.block_id, target, begin, end, body, ctx)

    def _cleanup(self, path: str, ctx: BlockContext) -> BlockResult:
        target = resolve_public_path(ctx.settings.document_root, ctx.settings.rewrite_config)
        begin, end = markers_for(path)
        return revert_section(self.block_id, target, begin, end, ctx)


class SuggestAlternateConfigBlock(BaseBlock):
    """Render server config for an administrator to apply by hand."""

    block_id = BlockId.SUGGEST_ALTERNATE_CONFIG

    def _execute(self, path: str, content: bytes, ctx: BlockContext) -> BlockResult:
        approach = ctx.approach or Approach.STATIC_FILE
        if ctx.profile.platform_type is PlatformType.IIS:
            platform = PlatformType.IIS
            sections = render_iis_suggestion(ctx.endpoint, approach)
        else:
            platform = PlatformType.NGINX
            sections = render_nginx_suggestion(ctx.endpoint, approach)
        snippet = "\n\n".join(sections.values())
        logger.info(
            "waypost.config.suggested",
            path=path,
            platform=platform.value,
            sections=list(sections),
        )
        return BlockResult.ok(
            self.block_id,
            BlockAction.APPLIED,
            platform=platform.value,
            sections=sections,
            snippet=snippet,
        )

    def _cleanup(self, path: str, ctx: BlockContext) -> BlockResult:
        return BlockResult.ok(self.block_id, BlockAction.NOOP)

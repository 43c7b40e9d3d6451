"""
Email templates for HomeBase notifications.

All templates use inline CSS for maximum email client compatibility.
Each template function returns (subject, html_body, text_body).
"""

from __future__ import annotations

from html import escape

# Color constants
BG_PAGE = "#F3F4F6"
BG_CARD = "#FFFFFF"
BG_FOOTER = "#F9FAFB"
BRAND = "#667EEA"
BRAND_DARK = "#764BA2"
TEXT_PRIMARY = "#111827"
TEXT_SECONDARY = "#4B5563"
TEXT_MUTED = "#9CA3AF"
BORDER = "#E5E7EB"


def _base_layout(title: str, content: str, app_name: str = "HomeBase") -> str:
    """Wrap content in the branded header/card/footer layout."""
    return f"""\
<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="UTF-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <title>{title}</title>
</head>
<body style="margin: 0; padding: 0; background-color: {BG_PAGE}; font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, 'Helvetica Neue', Arial, sans-serif;">
    <table role="presentation" cellspacing="0" cellpadding="0" border="0" width="100%" style="background-color: {BG_PAGE};">
        <tr>
            <td align="center" style="padding: 40px 20px;">
                <table role="presentation" cellspacing="0" cellpadding="0" border="0" width="600" style="max-width: 600px; width: 100%;">
                    <tr>
                        <td align="center" style="background: linear-gradient(135deg, {BRAND} 0%, {BRAND_DARK} 100%); border-radius: 16px 16px 0 0; padding: 40px 32px;">
                            <h1 style="margin: 0; color: #FFFFFF; font-size: 24px; font-weight: 700; line-height: 1.3;">{title}</h1>
                        </td>
                    </tr>
                    <tr>
                        <td style="background-color: {BG_CARD}; padding: 40px 32px;">
                            {content}
                        </td>
                    </tr>
                    <tr>
                        <td align="center" style="background-color: {BG_FOOTER}; border-top: 1px solid {BORDER}; border-radius: 0 0 16px 16px; padding: 24px 32px;">
                            <p style="color: {TEXT_SECONDARY}; font-size: 14px; line-height: 1.5; margin: 0 0 8px 0;">
                                Powered by <strong style="color: {BRAND};">{app_name}</strong>
                            </p>
                            <p style="color: {TEXT_MUTED}; font-size: 12px; line-height: 1.5; margin: 0;">
                                You're receiving this because you're a {app_name} user.
                                You can change email notifications in your settings.
                            </p>
                        </td>
                    </tr>
                </table>
            </td>
        </tr>
    </table>
</body>
</html>"""


def _button(url: str, label: str) -> str:
    """Render a CTA button."""
    return f"""\
<table role="presentation" cellspacing="0" cellpadding="0" border="0" style="margin: 0 auto;">
    <tr>
        <td align="center" style="background-color: {BRAND}; border-radius: 8px;">
            <a href="{url}" target="_blank" style="display: inline-block; padding: 14px 32px; color: #FFFFFF; font-size: 16px; font-weight: 600; text-decoration: none; border-radius: 8px;">
                {label}
            </a>
        </td>
    </tr>
</table>"""


def absolute_action_url(action_url: str | None, app_url: str) -> str:
    """Resolve a relative in-app link against the public app URL."""
    base = app_url.rstrip("/")
    if not action_url:
        return f"{base}/notifications"
    if action_url.startswith(("http://", "https://")):
        return action_url
    return f"{base}/{action_url.lstrip('/')}"


def notification_email(
    title: str,
    body: str,
    action_url: str | None,
    app_url: str,
    app_name: str = "HomeBase",
) -> tuple[str, str, str]:
    """
    Generic notification email mirroring an in-app notification.

    Returns:
        (subject, html_body, text_body)
    """
    link = absolute_action_url(action_url, app_url)
    safe_title = escape(title)
    content = f"""\
<p style="margin: 0 0 24px 0; color: {TEXT_SECONDARY}; font-size: 16px; line-height: 1.6; white-space: pre-wrap;">{escape(body)}</p>
{_button(escape(link, quote=True), "View Details")}
<p style="color: {TEXT_MUTED}; font-size: 12px; line-height: 1.5; margin: 24px 0 0 0;">
    If the button doesn't work, copy and paste this URL:<br>
    <a href="{escape(link, quote=True)}" style="color: {BRAND}; word-break: break-all;">{escape(link)}</a>
</p>"""
    html_body = _base_layout(safe_title, content, app_name)
    text_body = f"{title}\n\n{body}\n\nView details: {link}\n\n-- The {app_name} Team"
    return title, html_body, text_body

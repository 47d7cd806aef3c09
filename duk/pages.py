from __future__ import annotations

import html
import json

_STYLE = """
<style>
  body { font-family: system-ui, -apple-system, sans-serif; background: #fafafa;
         margin: 0; min-height: 100vh; display: flex; align-items: center; justify-content: center; }
  .card { background: #fff; border-radius: 12px; padding: 32px; max-width: 560px;
          box-shadow: 0 2px 12px rgba(0,0,0,.08); text-align: center; }
  img { max-width: 100%; height: auto; border-radius: 8px; }
  input { font-size: 20px; letter-spacing: 6px; width: 8em; text-align: center; padding: 6px; }
  button { font-size: 16px; padding: 8px 18px; margin-left: 8px; }
  .error { color: #c62828; min-height: 1.2em; }
  a { color: #1565c0; }
</style>
"""

_MESSAGES = {
    404: "找不到對應的圖片",
    410: "這個連結已過期",
    401: "密碼錯誤",
    503: "服務暫時無法使用，請稍後再試",
}


def _page(title: str, body: str) -> str:
    return (
        "<!doctype html><html lang='zh-Hant'><head><meta charset='utf-8'/>"
        "<meta name='viewport' content='width=device-width, initial-scale=1'/>"
        "<meta name='robots' content='noindex'/>"
        f"<title>{html.escape(title)}</title>{_STYLE}</head>"
        f"<body><div class='card'>{body}</div></body></html>"
    )


def error_page(status_code: int, detail: str) -> str:
    message = _MESSAGES.get(status_code, detail)
    return _page(
        detail,
        f"<h2>哎呀！</h2><p>{html.escape(message)}</p><a href='/'>回到首頁</a>",
    )


def gate_page(hash_: str) -> str:
    """Password form; posts to /api/verify-password and reloads on success."""
    return _page(
        "需要密碼",
        "<h2>🔒 需要密碼</h2><p>這張圖片受到密碼保護</p>"
        "<form id='gate'>"
        "<input id='pw' type='password' inputmode='numeric' autocomplete='off' required/>"
        "<button type='submit'>確認</button></form>"
        "<p class='error' id='err'></p>"
        "<script>"
        f"const HASH = {json.dumps(hash_)};"
        "document.getElementById('gate').addEventListener('submit', async (e) => {"
        "  e.preventDefault();"
        "  const res = await fetch('/api/verify-password', {method: 'POST',"
        "    headers: {'Content-Type': 'application/json'},"
        "    body: JSON.stringify({hash: HASH, password: document.getElementById('pw').value})});"
        "  if (res.ok) { location.reload(); return; }"
        "  document.getElementById('err').textContent = res.status === 401 ? '密碼錯誤' : '無法驗證，請稍後再試';"
        "});"
        "</script>",
    )


def preview_page(hash_: str, image_src: str, filename: str | None) -> str:
    alt = html.escape(filename or hash_)
    return _page(
        filename or hash_,
        f"<h1>圖鴨分享</h1><img src='{html.escape(image_src)}' alt='{alt}'/>"
        f"<p><a href='{html.escape(image_src)}?direct=true' target='_blank' rel='noopener'>在新視窗開啟</a></p>",
    )

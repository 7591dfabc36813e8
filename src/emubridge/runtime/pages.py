"""HTML pages served by the HTTP front end."""

from __future__ import annotations

from html import escape
from typing import Iterable
from urllib.parse import quote

from ..rom_library import RomEntry


_STYLE = """
  body { font-family: sans-serif; background: #1d1f21; color: #e0e0e0; margin: 2em; }
  a { color: #8abeb7; }
  ul { list-style: none; padding: 0; }
  li { margin: 0.4em 0; }
  #screen { image-rendering: pixelated; width: 480px; height: 432px; background: #000; }
  .pad button { width: 5em; margin: 0.2em; }
"""


def _page(title: str, body: str, script: str = "") -> str:
    return (
        "<!DOCTYPE html>\n"
        "<html>\n<head>\n"
        f"<meta charset=\"utf-8\">\n<title>{escape(title)}</title>\n"
        f"<style>{_STYLE}</style>\n"
        "</head>\n<body>\n"
        f"{body}\n"
        f"{f'<script>{script}</script>' if script else ''}\n"
        "</body>\n</html>\n"
    )


def render_rom_selection(roms: Iterable[RomEntry]) -> str:
    """Return the landing page listing ROMs and the upload form."""

    items = [
        f'<li><a href="/gameboy?rom={quote(entry.path)}">{escape(entry.name)}</a></li>'
        for entry in roms
    ]
    listing = "\n".join(items) if items else "<li><em>No ROMs found.</em></li>"
    body = f"""
<h1>GameBoy ROM selection</h1>
<ul>
{listing}
</ul>
<h2>Upload a ROM</h2>
<form action="/upload" method="post" enctype="multipart/form-data">
  <input type="file" name="rom" accept=".gb,.gbc">
  <button type="submit">Upload</button>
</form>
"""
    return _page("GameBoy ROM selection", body)


_BUTTONS = ("up", "down", "left", "right", "a", "b", "start", "select")
SKIP_FRAMES = 100

_LIVE_VIEW_SCRIPT = """
const screen = document.getElementById("screen");
const autoPlay = document.getElementById("auto-play");
let timer = null;

function refresh(url) {
  const next = new Image();
  next.onload = () => { screen.src = next.src; };
  next.src = url + "?t=" + Date.now();
}

function schedule() {
  if (timer !== null) { clearInterval(timer); }
  if (autoPlay.checked) {
    timer = setInterval(() => refresh("/api/advance_and_get_screen"), 16);
  } else {
    timer = setInterval(() => refresh("/screen"), 100);
  }
}

async function callTool(tool, params) {
  await fetch("/api/tool", {
    method: "POST",
    headers: {"Content-Type": "application/json"},
    body: JSON.stringify({tool: tool, params: params}),
  });
}

function press(button) { return callTool("press_" + button, {}); }

autoPlay.addEventListener("change", schedule);
document.getElementById("skip").addEventListener("click", () => {
  callTool("wait_frames", {duration_frames: Number(document.getElementById("skip").dataset.frames)});
});
document.querySelectorAll("[data-button]").forEach((el) => {
  el.addEventListener("click", () => press(el.dataset.button));
});
schedule();
"""


def render_live_view(image_path: str | None) -> str:
    """Return the emulator page that polls the screen endpoints."""

    buttons = "\n".join(
        f'  <button data-button="{name}">{name.upper()}</button>' for name in _BUTTONS
    )
    title = escape(image_path) if image_path else "no ROM loaded"
    body = f"""
<h1>GameBoy: {title}</h1>
<p><a href="/">Back to ROM selection</a></p>
<img id="screen" src="/screen" alt="GameBoy screen">
<p><label><input type="checkbox" id="auto-play"> Auto-play</label></p>
<div class="pad">
{buttons}
</div>
<p><button id="skip" data-frames="{SKIP_FRAMES}">Skip {SKIP_FRAMES} Frames</button></p>
"""
    return _page("GameBoy emulator", body, _LIVE_VIEW_SCRIPT)


__all__ = ["SKIP_FRAMES", "render_live_view", "render_rom_selection"]

"""Local preview server for Chronicle.

``chronicle serve`` builds the blog, serves the output over HTTP and keeps it
fresh while you write:

- Every build goes to a staging directory that replaces the served output only
  once it is complete.
- HTML responses get a small script that listens on a websocket and reloads the
  page after a successful rebuild.
- A watchdog observer watches the source folders and ``chronicle.yaml``.

Key classes:
- DevServer: Owns the build, the HTTP server, the reload hub and the watcher.
- ReloadHub: Websocket endpoint that tells connected browsers to reload.
"""

from __future__ import annotations

import asyncio
import functools
import json
import logging
import os
import shutil
import threading
import time
from http.server import SimpleHTTPRequestHandler, ThreadingHTTPServer
from pathlib import Path

import click
import websockets
from watchdog.events import FileSystemEventHandler
from watchdog.observers import Observer

from .build import CONFIG_FILE, build_site, load_config
from .errors import ChronicleError
from .utils import ensure_clean_dir

logger = logging.getLogger(__name__)

WATCHED_DIRS = ("_posts", "_drafts", "_layouts", "_includes", "assets")

RELOAD_SNIPPET = """<script>
(function () {{
  var socket = new WebSocket("ws://" + window.location.hostname + ":{port}/");
  socket.addEventListener("message", function (event) {{
    if (JSON.parse(event.data).type === "reload") {{
      window.location.reload();
    }}
  }});
}})();
</script>
"""


def inject_reload_script(html: str, script: str) -> str:
    """Insert ``script`` before the last ``</body>``, or append it."""
    head, marker, tail = html.rpartition("</body>")
    if not marker:
        return html + script
    return f"{head}{script}{marker}{tail}"


class ReloadHub:
    """Websocket endpoint for live reload.

    The hub runs its own event loop on a background thread; ``notify`` may be
    called from any thread.
    """

    def __init__(self, port: int):
        self.port = port
        self.clients: set = set()
        self.loop = asyncio.new_event_loop()

    def run_forever(self) -> None:  # pragma: no cover - needs a real socket
        asyncio.set_event_loop(self.loop)
        try:
            self.loop.run_until_complete(self._serve())
        except OSError as exc:
            logger.error("Live reload disabled; port %s unavailable: %s", self.port, exc)

    async def _serve(self) -> None:  # pragma: no cover - needs a real socket
        async with websockets.serve(self._register, "", self.port):
            await asyncio.Future()

    async def _register(self, websocket) -> None:
        self.clients.add(websocket)
        try:
            await websocket.wait_closed()
        finally:
            self.clients.discard(websocket)

    def notify(self) -> None:
        payload = json.dumps({"type": "reload"})
        asyncio.run_coroutine_threadsafe(self.send_all(payload), self.loop)

    async def send_all(self, payload: str) -> None:
        for client in list(self.clients):
            try:
                await client.send(payload)
            except websockets.ConnectionClosed:
                self.clients.discard(client)

    def stop(self) -> None:
        self.loop.call_soon_threadsafe(self.loop.stop)


class _PreviewHandler(SimpleHTTPRequestHandler):
    """Serves the output directory; HTML pages carry the reload snippet."""

    snippet = ""

    def end_headers(self):
        self.send_header("Cache-Control", "no-store")
        super().end_headers()

    def log_message(self, format, *args):  # noqa: A002 - stdlib signature
        logger.debug("%s %s", self.address_string(), format % args)

    def send_head(self):
        target = Path(self.translate_path(self.path))
        if target.is_dir():
            target = target / "index.html"
        if target.is_file() and target.suffix != ".html":
            return super().send_head()

        if target.is_file():
            self._write_page(200, target)
            return None
        not_found = Path(self.directory) / "404.html"
        if not_found.is_file():
            self._write_page(404, not_found)
        else:
            self.send_error(404, f"Nothing is published at {self.path}")
        return None

    def _write_page(self, status: int, page: Path) -> None:
        body = inject_reload_script(page.read_text(encoding="utf-8"), self.snippet)
        encoded = body.encode("utf-8")
        self.send_response(status)
        self.send_header("Content-Type", "text/html; charset=utf-8")
        self.send_header("Content-Length", str(len(encoded)))
        self.end_headers()
        self.wfile.write(encoded)


class DevServer:
    """Builds, serves and rebuilds a Chronicle project.

    Attributes:
        project_root: Project directory.
        output_dir: Directory being served.
        staging_dir: Directory each build is written to before it is swapped in.
        http_port: Port of the HTTP server.
        ws_port: Port of the reload websocket.
        hub: The live-reload hub.
        settle_delay: Seconds to wait after a swap before browsers reload.
    """

    def __init__(self, project_root: Path, http_port: int | None = None, ws_port: int | None = None):
        config = load_config(project_root)
        self.project_root = project_root
        self.output_dir = project_root / str(config.get("output_dir") or "_site")
        self.staging_dir = self.output_dir.with_name(f"{self.output_dir.name}.staging")
        self.http_port = int(http_port or config.get("port") or 4000)
        self.ws_port = ws_port if ws_port is not None else self.http_port + 1
        self.hub = ReloadHub(self.ws_port)
        self.snippet = RELOAD_SNIPPET.format(port=self.ws_port)
        self.settle_delay = 0.05
        self._building = threading.Lock()
        self._pending = threading.Event()
        self._fingerprint: tuple | None = None
        self._observer: Observer | None = None

    def start(self, include_drafts: bool = False) -> None:  # pragma: no cover - blocks forever
        self.publish(include_drafts)
        self._fingerprint = self.fingerprint()
        for target in (self._serve_http, self.hub.run_forever):
            threading.Thread(target=target, daemon=True).start()
        self._observer = self._watch(include_drafts)
        try:
            while True:
                time.sleep(1)
        except KeyboardInterrupt:
            click.echo("Stopping preview server")
            self.stop()

    def stop(self) -> None:
        if self._observer is not None:
            self._observer.stop()
            self._observer.join()
            self._observer = None
        self.hub.stop()

    def _serve_http(self) -> None:  # pragma: no cover - needs a real socket
        handler_cls = type("_Handler", (_PreviewHandler,), {"snippet": self.snippet})
        handler = functools.partial(handler_cls, directory=str(self.output_dir))
        httpd = ThreadingHTTPServer(("", self.http_port), handler)
        click.echo(f"Previewing {self.output_dir} at http://localhost:{self.http_port}")
        httpd.serve_forever()

    def _watch(self, include_drafts: bool) -> Observer:  # pragma: no cover - filesystem events
        observer = Observer()
        handler = _SourceChangeHandler(self, include_drafts)
        for name in WATCHED_DIRS:
            folder = self.project_root / name
            if folder.is_dir():
                observer.schedule(handler, str(folder), recursive=True)
        # Top level only, for chronicle.yaml.
        observer.schedule(handler, str(self.project_root), recursive=False)
        observer.start()
        return observer

    def publish(self, include_drafts: bool) -> None:
        """Build into the staging directory, then move it over the served output.

        Raises:
            ChronicleError: If the build fails; the served output is untouched.
        """
        ensure_clean_dir(self.staging_dir)
        build_site(
            self.project_root,
            include_drafts=include_drafts,
            root_url=f"http://localhost:{self.http_port}",
            clean_output=False,
            output_dir_override=self.staging_dir,
        )
        if self.output_dir.exists():
            shutil.rmtree(self.output_dir)
        os.replace(self.staging_dir, self.output_dir)

    def rebuild(self, include_drafts: bool) -> bool:
        """Rebuild when sources changed; True when browsers were told to reload.

        A failed build is reported and the previous output stays in place.
        A call made while another build runs only flags the change; the
        running build picks it up and builds again before it returns.
        """
        self._pending.set()
        reloaded = False
        while self._pending.is_set() and self._building.acquire(blocking=False):
            try:
                while self._pending.is_set():
                    self._pending.clear()
                    if self._publish_changes(include_drafts):
                        reloaded = True
            finally:
                self._building.release()
        return reloaded

    def _publish_changes(self, include_drafts: bool) -> bool:
        current = self.fingerprint()
        if current == self._fingerprint:
            return False
        self._fingerprint = current
        click.echo("Sources changed; rebuilding")
        try:
            self.publish(include_drafts)
        except ChronicleError as exc:
            click.echo(click.style(f"Build failed: {exc}", fg="red"), err=True)
            return False
        if self.settle_delay:
            time.sleep(self.settle_delay)
        self.hub.notify()
        return True

    def fingerprint(self) -> tuple:
        """Path, mtime and size of every watched file."""
        files: list[Path] = []
        for name in WATCHED_DIRS:
            folder = self.project_root / name
            if folder.is_dir():
                files.extend(sorted(p for p in folder.rglob("*") if p.is_file()))
        config_file = self.project_root / CONFIG_FILE
        if config_file.is_file():
            files.append(config_file)

        entries = []
        for path in files:
            stat = path.stat()
            entries.append(
                (path.relative_to(self.project_root).as_posix(), stat.st_mtime_ns, stat.st_size)
            )
        return tuple(entries)


class _SourceChangeHandler(FileSystemEventHandler):
    """Requests a rebuild for any change outside the output directories."""

    def __init__(self, server: DevServer, include_drafts: bool):
        super().__init__()
        self._server = server
        self._include_drafts = include_drafts
        self._ignored = (server.output_dir, server.staging_dir)

    def on_any_event(self, event):
        if event.is_directory:
            return
        changed = Path(event.src_path)
        if changed.name.startswith(".") or changed.name.endswith("~"):
            return
        if any(changed == d or d in changed.parents for d in self._ignored):
            return
        self._server.rebuild(self._include_drafts)

#!/usr/bin/env python3
"""Shell Chat CLI - Terminal client for the Gemini chat relay.

Connects to the relay over HTTP/SSE and renders thinking, code, search
activity and prose as they stream in. Synthesized speech can be saved
to disk as WAV files.
"""

import argparse
import asyncio
import base64
import json
import os
import signal
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

import httpx
from rich.console import Console, Group
from rich.live import Live
from rich.markdown import Markdown
from rich.panel import Panel
from rich.prompt import Prompt
from rich.style import Style
from rich.syntax import Syntax
from rich.text import Text

# Cache directory for session persistence
CACHE_DIR = Path.home() / ".cache" / "shell-chat"
SESSION_FILE = CACHE_DIR / "session_id"
AUDIO_DIR = CACHE_DIR / "audio"

SESSION_HEADER = "x-session-id"

# Styles
THINKING_STYLE = Style(color="magenta", italic=True)
SEARCH_STYLE = Style(color="yellow")
ERROR_STYLE = Style(color="red", bold=True)
INFO_STYLE = Style(color="cyan")


@dataclass
class TurnView:
    """Accumulates stream events for one turn into renderable state."""

    thinking: str = ""
    blocks: list[tuple[str, str, str]] = field(default_factory=list)
    searches: list[str] = field(default_factory=list)
    text: str = ""
    audio: list[tuple[int, bytes]] = field(default_factory=list)
    expected_chunks: int = 0
    status: Optional[str] = None
    error: Optional[str] = None
    complete: bool = False

    def apply(self, event: dict[str, Any]) -> None:
        kind = event.get("type")
        if kind == "thinking":
            self.thinking += event.get("content", "")
        elif kind == "code":
            self.blocks.append(
                ("code", event.get("language") or "python", event.get("content", ""))
            )
        elif kind == "codeResult":
            self.blocks.append(("result", "text", event.get("content", "")))
        elif kind == "search":
            self.searches.append(event.get("content", ""))
        elif kind == "text":
            self.text += event.get("content", "")
        elif kind == "ttsLoading":
            self.status = event.get("content") or "Generating speech..."
        elif kind == "ttsChunkInfo":
            self.expected_chunks = int(event.get("totalChunks", 0))
        elif kind == "audioChunk":
            self.audio.append(
                (int(event.get("chunkIndex", 0)), _decode(event.get("audioData")))
            )
        elif kind == "audio":
            self.audio.append((0, _decode(event.get("audioData"))))
        elif kind == "ttsError":
            self.status = event.get("content") or "Speech synthesis failed."
        elif kind == "error":
            self.error = event.get("content") or "Request failed."
        elif kind == "complete":
            self.complete = True
            self.status = None

    def render(self) -> Group:
        parts: list[Any] = []
        if self.thinking:
            parts.append(Text(self.thinking.strip(), style=THINKING_STYLE))
        for search in self.searches:
            parts.append(Text(f"🔍 {search}", style=SEARCH_STYLE))
        for kind, language, content in self.blocks:
            title = "Code" if kind == "code" else "Output"
            parts.append(
                Panel(Syntax(content, language), title=title, border_style="blue")
            )
        if self.text:
            parts.append(Markdown(self.text))
        if self.status:
            parts.append(Text(self.status, style=INFO_STYLE))
        if self.error:
            parts.append(Text(self.error, style=ERROR_STYLE))
        return Group(*parts)


def _decode(data: Optional[str]) -> bytes:
    if not data:
        return b""
    try:
        return base64.b64decode(data)
    except ValueError:
        return b""


def parse_data_line(line: str) -> Optional[dict[str, Any]]:
    """Return the JSON payload of an SSE ``data:`` line, if any."""

    line = line.strip()
    if not line.startswith("data:"):
        return None
    try:
        parsed = json.loads(line[5:].strip())
    except json.JSONDecodeError:
        return None
    return parsed if isinstance(parsed, dict) else None


class ShellChat:
    """Terminal chat client for the Gemini chat relay."""

    def __init__(
        self,
        server_url: str,
        tts: bool = False,
        voice: Optional[str] = None,
    ):
        self.server_url = server_url.rstrip("/")
        self.tts = tts
        self.voice = voice
        self.session_id: Optional[str] = None
        self.console = Console()
        self.running = True
        self._load_session()

    def _load_session(self) -> None:
        """Load session ID from cache file."""
        try:
            if SESSION_FILE.exists():
                self.session_id = SESSION_FILE.read_text().strip() or None
                if self.session_id:
                    self.console.print(
                        f"[dim]Resuming session: {self.session_id}[/dim]"
                    )
        except OSError:
            self.session_id = None

    def _save_session(self) -> None:
        """Save session ID to cache file."""
        try:
            CACHE_DIR.mkdir(parents=True, exist_ok=True)
            if self.session_id:
                SESSION_FILE.write_text(self.session_id)
        except OSError as e:
            self.console.print(f"[dim]Could not save session: {e}[/dim]")

    def _clear_session(self) -> None:
        """Clear the current session."""
        self.session_id = None
        try:
            SESSION_FILE.unlink(missing_ok=True)
        except OSError:
            pass
        self.console.print("Session cleared. Starting fresh.", style=INFO_STYLE)

    async def _check_health(self) -> bool:
        """Check if the relay is reachable."""
        try:
            async with httpx.AsyncClient(timeout=5.0) as client:
                resp = await client.get(f"{self.server_url}/health")
                if resp.status_code == 200:
                    data = resp.json()
                    self.console.print(
                        f"[dim]Connected. Model: {data.get('chat_model', 'unknown')}, "
                        f"speech: {data.get('tts_model', 'unknown')}[/dim]"
                    )
                    return True
        except httpx.HTTPError as e:
            self.console.print(f"Cannot connect to relay: {e}", style=ERROR_STYLE)
        return False

    def _show_help(self) -> None:
        """Show available commands."""
        help_text = """
[bold]Commands:[/bold]
  /help              Show this help message
  /clear             Clear session (new conversation)
  /tts               Toggle speech synthesis
  /voice <name>      Select a prebuilt voice (e.g., /voice Puck)
  /quit              Exit shell-chat

[bold]Shortcuts:[/bold]
  Ctrl+C             Cancel current request
  Ctrl+D             Exit shell-chat
"""
        self.console.print(
            Panel(help_text.strip(), title="Shell Chat Help", border_style="blue")
        )

    def _handle_command(self, cmd: str) -> bool:
        """Handle slash commands. Returns True if handled."""
        parts = cmd.strip().split(maxsplit=1)
        if not parts:
            return False

        command = parts[0].lower()

        if command == "/help":
            self._show_help()
            return True
        elif command == "/clear":
            self._clear_session()
            return True
        elif command == "/quit":
            self.running = False
            return True
        elif command == "/tts":
            self.tts = not self.tts
            state = "on" if self.tts else "off"
            self.console.print(f"Speech synthesis {state}", style=INFO_STYLE)
            return True
        elif command == "/voice":
            if len(parts) > 1:
                self.voice = parts[1].strip()
                self.console.print(f"Voice set to {self.voice}", style=INFO_STYLE)
            else:
                self.console.print("[dim]Usage: /voice <name>[/dim]")
            return True

        return False

    def _save_audio(self, view: TurnView) -> None:
        if not view.audio:
            return
        AUDIO_DIR.mkdir(parents=True, exist_ok=True)
        stem = self.session_id or "session"
        for index, data in sorted(view.audio):
            path = AUDIO_DIR / f"{stem}_{len(view.text)}_{index:02d}.wav"
            path.write_bytes(data)
        total = view.expected_chunks or len(view.audio)
        self.console.print(
            f"[dim]Saved {len(view.audio)}/{total} audio file(s) to {AUDIO_DIR}[/dim]"
        )

    async def _stream_chat(self, message: str) -> None:
        """Send message and stream response via SSE."""
        payload: dict[str, Any] = {"message": message, "tts": self.tts}
        if self.session_id:
            payload["sessionId"] = self.session_id
        if self.voice:
            payload["voice"] = self.voice

        view = TurnView()

        try:
            async with httpx.AsyncClient(timeout=None) as client:
                async with client.stream(
                    "POST",
                    f"{self.server_url}/api/chat",
                    json=payload,
                    headers={"Accept": "text/event-stream"},
                ) as response:
                    if response.status_code != 200:
                        error = await response.aread()
                        self.console.print(
                            f"Error {response.status_code}: {error.decode()}",
                            style=ERROR_STYLE,
                        )
                        return

                    minted = response.headers.get(SESSION_HEADER)
                    if minted and minted != self.session_id:
                        self.session_id = minted
                        self._save_session()

                    with Live(console=self.console, refresh_per_second=10) as live:
                        async for line in response.aiter_lines():
                            event = parse_data_line(line)
                            if event is None:
                                continue
                            view.apply(event)
                            live.update(view.render())

            self._save_audio(view)

        except httpx.ReadTimeout:
            self.console.print("Request timed out", style=ERROR_STYLE)
        except asyncio.CancelledError:
            self.console.print("\n[dim]Request cancelled[/dim]")
        except httpx.HTTPError as e:
            self.console.print(f"Error: {e}", style=ERROR_STYLE)

    async def run(self) -> None:
        """Main chat loop."""
        if not await self._check_health():
            return

        self.console.print()
        self.console.print(
            "[bold]Shell Chat[/bold] - Type /help for commands, Ctrl+D to exit",
            style=INFO_STYLE,
        )
        self.console.print()

        while self.running:
            try:
                user_input = Prompt.ask("[bold blue]You[/bold blue]")
                if not user_input.strip():
                    continue

                if user_input.startswith("/") and self._handle_command(user_input):
                    continue

                self.console.print()
                await self._stream_chat(user_input)
                self.console.print()

            except EOFError:
                # Ctrl+D
                self.console.print("\n[dim]Goodbye![/dim]")
                break
            except KeyboardInterrupt:
                self.console.print()
                continue


def main() -> None:
    """CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Shell Chat - Terminal client for the Gemini chat relay",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  shell_chat.py                           Connect to localhost:8000
  shell_chat.py --server http://pi:8000   Connect to remote server
  shell_chat.py --tts --voice Puck        Save spoken replies as WAV

Environment Variables:
  SHELLCHAT_SERVER    Default server URL
""",
    )
    parser.add_argument(
        "--server",
        "-s",
        default=os.environ.get("SHELLCHAT_SERVER", "http://localhost:8000"),
        help="Relay server URL (default: http://localhost:8000)",
    )
    parser.add_argument(
        "--tts",
        action="store_true",
        help="Request speech synthesis for every reply",
    )
    parser.add_argument(
        "--voice",
        default=None,
        help="Prebuilt voice name (server default when omitted)",
    )

    args = parser.parse_args()

    def signal_handler(sig, frame):
        print("\nExiting...")
        sys.exit(0)

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    chat = ShellChat(server_url=args.server, tts=args.tts, voice=args.voice)
    try:
        asyncio.run(chat.run())
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()

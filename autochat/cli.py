"""
Command line interface for autochat.
"""

import asyncio
from typing import Annotated, Optional

import cyclopts
from dotenv import load_dotenv
from rich.console import Console

from autochat.config import ChatSettings, setup_logging
from autochat.messages import Message, Sender

app = cyclopts.App(name="autochat", help="Chat with an assistant by text or voice")
console = Console()


def render_message(message: Message) -> None:
    """Print one message bubble."""
    time_str = message.timestamp.astimezone().strftime("%H:%M")
    if message.sender == Sender.USER:
        header = "[bold cyan]You[/bold cyan]"
    else:
        header = "[bold magenta]AI[/bold magenta]"
    console.print(f"{header} [dim]{time_str}[/dim]")
    console.print(message.text, highlight=False)
    console.print()


def show_live_transcript(text: str) -> None:
    """Echo the live transcript while the user is speaking."""
    if text:
        console.print(f"[dim]... {text}[/dim]", highlight=False)


async def _chat_loop(session, start_auto: bool) -> None:
    loop = asyncio.get_running_loop()

    try:
        if start_auto:
            session.toggle_auto_chat(True)

        while True:
            prompt = "Speak now... " if session.controller.auto_chat_enabled else "> "
            try:
                line = await loop.run_in_executor(None, console.input, prompt)
            except EOFError:
                break

            line = line.strip()
            if line in ("/quit", "/exit"):
                break
            if line == "/auto":
                enabled = session.toggle_auto_chat()
                console.print(
                    f"[yellow]Auto-chat {'enabled' if enabled else 'disabled'}[/yellow]"
                )
                continue
            if line and not session.submit_text(line):
                console.print("[dim]Still waiting for the previous reply...[/dim]")
    finally:
        await session.close()


@app.default
def chat(
    assistant_url: Annotated[
        Optional[str], cyclopts.Parameter(help="Assistant webhook URL")
    ] = None,
    auto: Annotated[
        bool, cyclopts.Parameter(help="Start with auto-chat (hands-free) enabled")
    ] = False,
    # STT settings
    stt_backend: Annotated[
        str, cyclopts.Parameter(help="STT backend (remote_whisper, openai, google)")
    ] = "google",
    stt_url: Annotated[
        str, cyclopts.Parameter(help="Remote Whisper URL (for remote_whisper backend)")
    ] = "http://localhost:8000/transcribe",
    device_index: Annotated[
        Optional[int], cyclopts.Parameter(help="Audio input device index")
    ] = None,
    # TTS settings
    tts_backend: Annotated[
        str, cyclopts.Parameter(help="TTS backend (edge, none)")
    ] = "edge",
    tts_voice: Annotated[
        Optional[str], cyclopts.Parameter(help="TTS voice name (auto-selected if unset)")
    ] = None,
    locale: Annotated[
        Optional[str], cyclopts.Parameter(help="Speech locale, e.g. en-US")
    ] = None,
    verbose: Annotated[bool, cyclopts.Parameter(help="Enable verbose logging")] = False,
):
    """
    Start a chat session.

    Type a message and press enter to send it. Type /auto to toggle
    hands-free mode and /quit to exit.

    Example:
        autochat --assistant-url https://example.com/webhook/chat
        autochat --auto --tts-voice en-US-JennyNeural
    """
    from autochat.assistant import WebhookAssistantClient
    from autochat.chat import ChatSession
    from autochat.voice.controller import ControllerCallbacks
    from autochat.voice.listener import MicrophoneCapture
    from autochat.voice.speaker import create_speech_output
    from autochat.voice.transcriber import create_transcriber

    settings = ChatSettings.from_env()
    if assistant_url:
        settings.assistant_url = assistant_url
    if tts_voice:
        settings.tts_voice = tts_voice
    if locale:
        settings.locale = locale
    setup_logging("DEBUG" if verbose else settings.log_level)

    transcriber_kwargs = {}
    if stt_backend == "remote_whisper":
        transcriber_kwargs["url"] = stt_url

    try:
        transcriber = create_transcriber(stt_backend, **transcriber_kwargs)
    except (ValueError, ImportError) as e:
        console.print(f"[red]Error: {e}[/red]")
        return 1

    speech = create_speech_output(
        tts_backend, voice=settings.tts_voice, locale=settings.locale
    )
    capture = MicrophoneCapture(
        transcriber, device_index=device_index, locale=settings.locale
    )
    assistant = WebhookAssistantClient(
        settings.assistant_url, timeout=settings.request_timeout
    )

    callbacks = ControllerCallbacks(
        on_alert=lambda text: console.print(f"[bold red]{text}[/bold red]"),
        on_input_change=show_live_transcript,
    )
    session = ChatSession(
        assistant=assistant,
        capture=capture,
        speech=speech,
        settings=settings,
        renderer=render_message,
        callbacks=callbacks,
    )

    console.print("[bold]How can I help you today?[/bold] Ask me anything!")
    console.print(f"[dim]Assistant: {settings.assistant_url}[/dim]")
    console.print("[dim]/auto toggles hands-free mode, /quit exits[/dim]\n")

    try:
        asyncio.run(_chat_loop(session, auto))
    except KeyboardInterrupt:
        console.print("\nChat ended.")


@app.command
def devices():
    """List available audio input devices."""
    try:
        from autochat.voice import check_voice_available

        check_voice_available()
    except ImportError as e:
        console.print(f"[red]Error: {e}[/red]")
        return 1

    from autochat.voice.listener import list_microphones

    console.print("\nAvailable audio input devices:")
    console.print("-" * 50)
    for idx, info in list_microphones():
        name = info.get("name", "Unknown")
        channels = info.get("maxInputChannels", 0)
        rate = info.get("defaultSampleRate", 0)
        console.print(f"  [{idx}] {name}", highlight=False, markup=False)
        console.print(f"       Channels: {channels}, Rate: {rate}")


@app.command
def voices(
    locale: Annotated[
        Optional[str], cyclopts.Parameter(help="Only show voices for this locale")
    ] = None,
):
    """List available Edge TTS voices and the one auto-selection would pick."""
    try:
        import edge_tts
    except ImportError:
        console.print("[red]Error: edge-tts not installed[/red]")
        console.print("Install with: pip install autochat[voice]")
        return 1

    from autochat.voice.speaker import select_voice

    all_voices = asyncio.run(edge_tts.list_voices())

    by_locale = {}
    for v in all_voices:
        if locale and v["Locale"] != locale:
            continue
        by_locale.setdefault(v["Locale"], []).append(v)

    for voice_locale in sorted(by_locale):
        console.print(f"\n[bold]{voice_locale}[/bold]:")
        for v in by_locale[voice_locale]:
            console.print(f"  {v['ShortName']} ({v['Gender']})")

    target = locale or ChatSettings.from_env().locale
    console.print(
        f"\nAuto-selected for {target}: {select_voice(all_voices, target) or 'default'}"
    )


def main():
    load_dotenv()
    app()

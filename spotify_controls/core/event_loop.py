import asyncio
import threading
from typing import Optional

_GLOBAL_LOOP: Optional[asyncio.AbstractEventLoop] = None
_LOOP_THREAD: Optional[threading.Thread] = None


def get_global_loop() -> asyncio.AbstractEventLoop:
    """
    Returns the asyncio event loop that owns every D-Bus round-trip when the
    indicator is rendered by GTK.

    Returns:
        asyncio.AbstractEventLoop: The shared loop, created on first use.
    """
    global _GLOBAL_LOOP
    if _GLOBAL_LOOP is None:
        _GLOBAL_LOOP = asyncio.new_event_loop()
    return _GLOBAL_LOOP


def start_global_loop() -> asyncio.AbstractEventLoop:
    """
    Runs the global loop forever on a daemon thread so the GLib main loop can
    keep the main thread. Calling it again while the thread is alive is a no-op.
    """
    global _LOOP_THREAD
    loop = get_global_loop()
    if _LOOP_THREAD is not None and _LOOP_THREAD.is_alive():
        return loop

    def _run():
        asyncio.set_event_loop(loop)
        loop.run_forever()

    _LOOP_THREAD = threading.Thread(
        target=_run, name="SpotifyControlsLoop", daemon=True
    )
    _LOOP_THREAD.start()
    return loop


def stop_global_loop() -> None:
    global _LOOP_THREAD
    loop = _GLOBAL_LOOP
    if loop is None or _LOOP_THREAD is None:
        return
    loop.call_soon_threadsafe(loop.stop)
    _LOOP_THREAD.join(timeout=1.0)
    _LOOP_THREAD = None

"""Command-line interface for LG Cast."""

import argparse
import asyncio
import os
from typing import List, Optional

from .autoplay import PlaybackRun, PlaylistItem
from .config import APP_VERSION, MERGE_CACHE_DIR, Settings
from .context import DeviceContext
from .conversion import clear_cache
from .discovery import DeviceEndpoint, discover_devices, endpoint_from_ip
from .keys import WHEEL_DOWN, WHEEL_UP, parse_key
from .session import POLLING_STATES
from .utils import extract_video_id, is_image, is_youtube_url


def show_status(settings: Settings):
    """Show current device status."""
    current_device = settings.current_device

    if current_device:
        print(f"📺 Current device: {current_device.get('name', 'Unknown')}")
        print(f"   IP: {current_device.get('ip', 'unknown')}")
        if current_device.get('location'):
            print(f"   DLNA: {current_device['location']}")
        paired = current_device.get('ip') in settings.sessions
        print(f"   Remote control: {'paired' if paired else 'not paired (use --pair)'}")
    else:
        print("⚠️  No device selected")
        print("   Use --scan to find TVs, then --device IP to select one")

    merged_count = 0
    if os.path.exists(MERGE_CACHE_DIR):
        merged_count = len([f for f in os.listdir(MERGE_CACHE_DIR) if f.endswith('.mp4')])
    print(f"\n📁 Cache:")
    print(f"   Merged videos: {merged_count}")
    if merged_count:
        print(f"\n   Use --clear-cache to clear it")


async def scan_devices_cli(settings: Settings):
    """Scan for TVs and remember what was found."""
    print("🔍 Scanning for TVs...")
    devices = await discover_devices(timeout=5)

    if devices:
        settings.save_discovered_devices([d.to_dict() for d in devices])
        print(f"\n✅ Found {len(devices)} TV(s):\n")
        for dev in devices:
            features = []
            if dev.has_cast_service:
                features.append("cast")
            if dev.has_legacy_remote:
                features.append("remote")
            print(f"   {dev.ip:15}  {dev.name}  [{', '.join(features) or 'no services'}]")
        print(f"\n💡 Use --device IP to select a TV")
    else:
        print("\n❌ No TVs found on the network")
        print("   Make sure your TV is on and connected to the same network")


async def set_device_by_ip(settings: Settings, ip: str):
    """Set the current device by IP address."""
    known = settings.find_device(ip)
    if known:
        settings.current_device = known
        settings.save()
        print(f"✅ Selected: {known.get('name', ip)} ({ip})")
        return

    endpoint = await endpoint_from_ip(ip)
    settings.current_device = endpoint.to_dict()
    settings.save_discovered_devices([endpoint.to_dict()])
    print(f"✅ Selected: {ip}")
    if not endpoint.has_legacy_remote:
        print("   (Remote control API not detected on this address)")


def forget_device_cli(settings: Settings):
    if not settings.current_device:
        print("⚠️  No device selected")
        return
    name = settings.current_device.get('name', settings.current_device.get('ip'))
    settings.forget_device()
    print(f"🗑️  Forgot {name}")


def get_context(settings: Settings) -> Optional[DeviceContext]:
    if not settings.current_device:
        print("❌ No device selected. Use --scan and --device IP to set one.")
        return None
    return DeviceContext(DeviceEndpoint.from_dict(settings.current_device), settings)


def require_pairing(ctx: DeviceContext) -> bool:
    if ctx.is_paired:
        return True
    print("❌ Not paired with the TV. Use --pair, then --pin PIN.")
    return False


# ======================== REMOTE CONTROL ========================

async def pair_cli(ctx: DeviceContext):
    if await ctx.remote.request_pairing_key():
        print("🔑 A PIN should now be shown on the TV")
        print("   Run again with --pin PIN to complete pairing")
    else:
        print("❌ TV did not respond to the pairing request")


async def pin_cli(ctx: DeviceContext, pin: str):
    if await ctx.remote.complete_pairing(pin):
        print("✅ Paired")
    else:
        print("❌ Pairing failed. Check the PIN and try --pair again.")


async def remote_cli(ctx: DeviceContext, args: argparse.Namespace):
    """Send one remote control command."""
    if args.cursor:
        ok = await ctx.remote.set_cursor_visible(args.cursor == 'on')
        print("✅ Cursor updated" if ok else "❌ Cursor command failed")
        return

    if not require_pairing(ctx):
        return

    if args.key:
        code = parse_key(args.key)
        if code is None:
            print(f"❌ Unknown key: {args.key}")
            return
        ok = await ctx.remote.send_key(code)
        label = code.name
    elif args.click:
        ok = await ctx.remote.send_mouse_click()
        label = "click"
    else:
        ok = await ctx.remote.send_wheel(args.wheel)
        label = f"wheel {args.wheel}"

    if ok:
        print(f"✅ Sent {label}")
    elif ctx.sessions.invalidated:
        print("❌ The TV rejected the pairing. Use --pair to pair again.")
    else:
        print(f"❌ Failed to send {label}")


async def apps_cli(ctx: DeviceContext):
    if not require_pairing(ctx):
        return
    apps = await ctx.remote.get_app_list()
    if not apps:
        print("⚠️  No apps reported by the TV")
        return
    print(f"📱 {len(apps)} app(s):\n")
    for app in apps:
        print(f"   {app}")


# ======================== APPS ========================

async def launch_cli(ctx: DeviceContext, app_name: str):
    await ctx.launcher.discover_app()
    if await ctx.launcher.launch_app(app_name):
        print(f"🚀 Launched {app_name}")
    else:
        print(f"❌ Could not launch {app_name}")


async def youtube_cli(ctx: DeviceContext, ref: str):
    video_id = extract_video_id(ref) if is_youtube_url(ref) else ref
    if not video_id:
        print(f"❌ No video id in {ref}")
        return
    launcher = ctx.launcher
    if not await launcher.discover_app():
        print("❌ YouTube app not found on the TV")
        return

    if launcher.working_port is None:
        # Netcast fallback opened the browser or the app without a deep link
        print("🌐 Opened YouTube on the TV; deep links are not supported on this model")
        return

    if await launcher.push_content(video_id):
        print(f"▶️  Playing {video_id} in the YouTube app")
    else:
        print(f"❌ Could not start {video_id}")


async def stop_app_cli(ctx: DeviceContext):
    await ctx.launcher.discover_app()
    if await ctx.launcher.stop_target_app():
        print("⏹️  YouTube app stopped")
    else:
        print("❌ Could not stop the YouTube app")


# ======================== CASTING ========================

async def wait_for_run(run: Optional[PlaybackRun]):
    if run is None:
        print("❌ Nothing to play")
        return
    print("   Press Ctrl+C to stop")
    await run.wait()
    if run.skipped:
        print(f"⚠️  Skipped {len(run.skipped)} item(s) that could not be loaded")
    print(f"⏹️  Finished ({run.status.value})")


async def cast_cli(ctx: DeviceContext, args: argparse.Namespace):
    print(f"📡 Connecting to {ctx.endpoint.name}...")
    if not await ctx.connect_cast():
        print("❌ Could not find a media renderer on the TV")
        return
    player = ctx.autoplayer

    if args.stop:
        await ctx.session.stop()
        print("⏹️  Playback stopped")
    elif args.slideshow:
        print(f"🖼️  Slideshow of {len(args.slideshow)} image(s)")
        await wait_for_run(await player.start_slideshow(args.slideshow, "Slideshow"))
    elif args.album:
        print(f"🖼️  Album of {len(args.album)} image(s)")
        await wait_for_run(await player.play_album(args.album, "Album"))
    elif args.playlist:
        items = [PlaylistItem(ref) for ref in args.playlist]
        print(f"🎬 Playlist of {len(items)} video(s)")
        await wait_for_run(await player.play_video_playlist(items, "Playlist"))
    elif is_image(args.media):
        if await player.show_image(args.media):
            print(f"🖼️  Showing {args.media}")
        else:
            print(f"❌ Could not show {args.media}")
    else:
        print(f"🎬 Casting {args.media}")
        if await player.play_video(args.media):
            print("▶️  Playing. Press Ctrl+C to stop")
            await wait_for_single(ctx)
        else:
            print(f"❌ Could not play {args.media}: {ctx.session.error_message or 'not loadable'}")


async def wait_for_single(ctx: DeviceContext):
    session = ctx.session
    try:
        while session.get_current_state() in POLLING_STATES:
            await asyncio.sleep(1)
    except asyncio.CancelledError:
        await session.stop()
        raise
    print(f"⏹️  Finished ({session.get_current_state().value})")


async def run_device_command(settings: Settings, args: argparse.Namespace):
    ctx = get_context(settings)
    if ctx is None:
        return
    try:
        if args.pair:
            await pair_cli(ctx)
        elif args.pin:
            await pin_cli(ctx, args.pin)
        elif args.key or args.click or args.wheel or args.cursor:
            await remote_cli(ctx, args)
        elif args.apps:
            await apps_cli(ctx)
        elif args.launch:
            await launch_cli(ctx, args.launch)
        elif args.youtube:
            await youtube_cli(ctx, args.youtube)
        elif args.stop_app:
            await stop_app_cli(ctx)
        else:
            await cast_cli(ctx, args)
    finally:
        await ctx.close()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="lgcast",
        description="Control and cast to LG TVs",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Casting
  python -m lgcast movie.mp4                   # Cast a video (Ctrl+C to stop)
  python -m lgcast "https://youtube.com/watch?v=..."  # Cast a YouTube video over DLNA
  python -m lgcast --slideshow a.jpg b.jpg     # Slideshow, 5 seconds per image
  python -m lgcast --playlist a.mp4 b.mp4      # Play videos back to back
  python -m lgcast --stop                      # Stop current playback

  # Remote control (Netcast TVs)
  python -m lgcast --pair                      # Show pairing PIN on the TV
  python -m lgcast --pin 123456                # Complete pairing
  python -m lgcast --key VOL_UP                # Send a key

  # Apps
  python -m lgcast --youtube dQw4w9WgXcQ       # Play in the YouTube app
  python -m lgcast --launch Netflix            # Launch an app

  # Device management
  python -m lgcast --scan                      # Scan network for TVs
  python -m lgcast --device 192.168.1.50       # Set TV by IP address
        """
    )

    parser.add_argument("media", nargs="?", help="Video file, URL or YouTube link to cast")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    parser.add_argument("--version", action="version", version=f"%(prog)s {APP_VERSION}")

    # Casting
    parser.add_argument("--slideshow", nargs="+", metavar="FILE",
                        help="Show images as a slideshow")
    parser.add_argument("--album", nargs="+", metavar="FILE",
                        help="Show images as an album (longer per image)")
    parser.add_argument("--playlist", nargs="+", metavar="REF",
                        help="Play videos one after another")
    parser.add_argument("--stop", action="store_true", help="Stop current playback")

    # Remote control
    parser.add_argument("--pair", action="store_true", help="Request a pairing PIN")
    parser.add_argument("--pin", metavar="PIN", help="Complete pairing with the PIN shown on the TV")
    parser.add_argument("--key", metavar="NAME", help="Send a remote key (name or code)")
    parser.add_argument("--click", action="store_true", help="Send a pointer click")
    parser.add_argument("--wheel", choices=[WHEEL_UP, WHEEL_DOWN], help="Scroll the pointer wheel")
    parser.add_argument("--cursor", choices=["on", "off"], help="Show or hide the pointer")
    parser.add_argument("--apps", action="store_true", help="List installed apps")

    # Apps
    parser.add_argument("--launch", metavar="APP", help="Launch an app by name")
    parser.add_argument("--youtube", metavar="ID", help="Play a video in the YouTube app")
    parser.add_argument("--stop-app", action="store_true", help="Close the YouTube app")

    # Device management
    parser.add_argument("--scan", action="store_true", help="Scan network for TVs")
    parser.add_argument("--device", metavar="IP", help="Set TV by IP address")
    parser.add_argument("--status", action="store_true", help="Show current device and status")
    parser.add_argument("--forget", action="store_true", help="Forget/unpair current device")
    parser.add_argument("--clear-cache", action="store_true", help="Clear merged YouTube videos")
    return parser


def has_device_command(args: argparse.Namespace) -> bool:
    return any((
        args.media, args.slideshow, args.album, args.playlist, args.stop,
        args.pair, args.pin, args.key, args.click, args.wheel, args.cursor,
        args.apps, args.launch, args.youtube, args.stop_app,
    ))


def run_cli(argv: Optional[List[str]] = None, settings: Optional[Settings] = None):
    """Run the command-line interface."""
    parser = build_parser()
    args = parser.parse_args(argv)
    settings = settings or Settings().load()

    # Handle commands in priority order
    if args.status:
        show_status(settings)
    elif args.scan:
        asyncio.run(scan_devices_cli(settings))
    elif args.device:
        asyncio.run(set_device_by_ip(settings, args.device))
    elif args.forget:
        forget_device_cli(settings)
    elif args.clear_cache:
        count = clear_cache()
        print(f"🗑️  Removed {count} cached file(s)")
    elif has_device_command(args):
        asyncio.run(run_device_command(settings, args))
    else:
        parser.print_help()

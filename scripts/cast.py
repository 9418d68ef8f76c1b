"""Broadcast a media source or watch a room from the terminal."""
from __future__ import annotations

import argparse
import asyncio
import logging

from screenrelay.client import (
    ClientNegotiationController,
    MediaAcquisitionError,
    PlayerMediaSource,
    ReconnectExhaustedError,
    room_from_share_url,
)
from screenrelay.core.config import settings


def print_event(name: str, data: dict) -> None:
    if name == "room-created":
        print(f"Room {data['roomId']} is live: {data['shareUrl']}")
        print(f"QR code: {data['qrUrl']}")
    elif name == "viewer-count":
        print(f"{data['count']} viewer(s) watching")
    elif name == "track":
        print(f"Receiving {data['track'].kind} from the broadcaster")
    elif name in {"error", "fatal"}:
        print(f"[{name}] {data['message']}")
    else:
        print(f"[{name}] {data}")


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--server", default=f"ws://localhost:{settings.port}/", help="Relay WebSocket URL")
    sub = parser.add_subparsers(dest="command", required=True)

    broadcast = sub.add_parser("broadcast", help="Share a media source")
    broadcast.add_argument("source", help="ffmpeg input, e.g. ':0.0' or a video file")
    broadcast.add_argument("--format", default=None, help="ffmpeg input format, e.g. x11grab")
    broadcast.add_argument("--room", default=None, help="Room code to announce")

    join = sub.add_parser("join", help="Watch a room")
    join.add_argument("room", help="Room code or share link")
    return parser.parse_args()


async def main() -> None:
    args = parse_args()
    if args.command == "broadcast":
        controller = ClientNegotiationController(
            args.server,
            media_source=PlayerMediaSource(args.source, format=args.format),
            on_event=print_event,
        )
        try:
            await controller.start_broadcasting(args.room)
        except MediaAcquisitionError as exc:
            print(f"Could not start broadcasting: {exc}")
            return
    else:
        room = room_from_share_url(args.room) or args.room
        controller = ClientNegotiationController(args.server, on_event=print_event)
        await controller.join(room)

    try:
        await controller.wait_closed()
    except ReconnectExhaustedError:
        print("Could not reconnect to the relay. Restart to try again.")
    finally:
        await controller.stop()


if __name__ == "__main__":
    logging.basicConfig(level=settings.log_level.upper())
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        pass

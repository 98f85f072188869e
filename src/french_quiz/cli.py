"""Command-line entry point for a single device's profiles and progress."""

import argparse
import asyncio
import sys
from pathlib import Path

from french_quiz.config import get_settings
from french_quiz.device import Device, open_device
from french_quiz.errors import (
    InvalidProfileName,
    ProfileLimitReached,
    ProfileNotFound,
    TransferClientError,
)
from french_quiz.models.profile import Avatar, PracticeMode, Profile
from french_quiz.progress.analytics import (
    achievements,
    overall_stats,
    practice_recommendation,
    streak_info,
)
from french_quiz.transfer.client import TransferClient, import_from_code


class NoActiveProfile(Exception):
    pass


def _target_profile(device: Device, profile_id: str | None) -> Profile:
    if profile_id:
        return device.profiles.require(profile_id)
    profile = device.profiles.active_profile()
    if profile is None:
        raise NoActiveProfile("no active profile; create one or pass --profile")
    return profile


def _print_summary(profile: Profile) -> None:
    overall = overall_stats(profile)
    streak = streak_info(profile)
    recommendation = practice_recommendation(profile)
    print(f"{profile.name} ({profile.id})")
    print(
        f"  words: {overall.total_items}  attempts: {overall.total_attempts}"
        f"  accuracy: {overall.accuracy:.0f}%"
    )
    print(f"  streak: {streak.current} (longest {streak.longest})")
    unlocked = achievements(profile)
    if unlocked:
        print(f"  achievements: {', '.join(unlocked)}")
    print(f"  next: {recommendation.message}")
    for item in recommendation.items:
        print(f"    - {item.word_id} [{item.category}] {item.accuracy:.0f}%")


def _run(args: argparse.Namespace, device: Device) -> int:
    store = device.profiles

    if args.cmd == "profiles":
        active_id = store.active_profile_id()
        for profile in store.list_profiles().values():
            marker = "*" if profile.id == active_id else " "
            print(f"{marker} {profile.id}  {profile.name}  [{profile.avatar}]")
        return 0

    if args.cmd == "create":
        profile = store.create_profile(args.name, Avatar(args.avatar))
        print(f"created {profile.name} ({profile.id})")
        return 0

    if args.cmd == "switch":
        profile = store.require(args.profile_id)
        store.switch_profile(profile.id)
        print(f"active profile: {profile.name}")
        return 0

    if args.cmd == "record":
        profile = _target_profile(device, args.profile)
        device.recorder.record_attempt(
            profile.id,
            args.word_id,
            args.correct,
            mode=args.mode,
            category=args.category,
        )
        stat = store.require(profile.id).stats[args.word_id]
        print(f"{args.word_id}: {stat.correct}/{stat.attempts} correct")
        return 0

    if args.cmd == "summary":
        _print_summary(_target_profile(device, args.profile))
        return 0

    client = TransferClient(args.server)

    if args.cmd == "export":
        profile = _target_profile(device, args.profile)
        created = asyncio.run(client.create_transfer_code(profile))
        print(f"transfer code: {created['code']}")
        print(f"expires at: {created['expiresAt']}")
        return 0

    if args.cmd == "import":
        profile = asyncio.run(import_from_code(client, store, args.code))
        print(f"imported {profile.name} ({profile.id})")
        return 0

    return 2


def main(argv: list[str] | None = None) -> int:
    p = argparse.ArgumentParser(prog="french-quiz-device")
    p.add_argument("--data-dir", type=Path, default=None, help="Device storage directory")
    p.add_argument("--server", default=None, help="Transfer API base URL")
    sub = p.add_subparsers(dest="cmd", required=True)

    sub.add_parser("profiles", help="List profiles; * marks the active one")

    cp = sub.add_parser("create")
    cp.add_argument("name")
    cp.add_argument("--avatar", default=Avatar.CAT.value, choices=[a.value for a in Avatar])

    sw = sub.add_parser("switch")
    sw.add_argument("profile_id")

    rp = sub.add_parser("record", help="Record one answer")
    rp.add_argument("word_id")
    outcome = rp.add_mutually_exclusive_group(required=True)
    outcome.add_argument("--correct", dest="correct", action="store_true")
    outcome.add_argument("--incorrect", dest="correct", action="store_false")
    rp.add_argument(
        "--mode",
        default=PracticeMode.MULTIPLE_CHOICE.value,
        choices=[m.value for m in PracticeMode],
    )
    rp.add_argument("--category", default="unknown")
    rp.add_argument("--profile", default=None)

    sp = sub.add_parser("summary", help="Progress summary and what to practice next")
    sp.add_argument("--profile", default=None)

    ep = sub.add_parser("export", help="Upload a profile and print its transfer code")
    ep.add_argument("--profile", default=None)

    ip = sub.add_parser("import", help="Redeem a transfer code on this device")
    ip.add_argument("code")

    args = p.parse_args(argv)
    args.server = args.server or get_settings().transfer_api_url

    device = open_device(args.data_dir)
    try:
        return _run(args, device)
    except TransferClientError as e:
        print(f"error: {e.message}", file=sys.stderr)
    except ProfileNotFound as e:
        print(f"error: no profile {e.args[0]}", file=sys.stderr)
    except (ProfileLimitReached, InvalidProfileName, NoActiveProfile) as e:
        print(f"error: {e}", file=sys.stderr)
    return 1


if __name__ == "__main__":
    raise SystemExit(main())

"""Entrypoint for the MediScan command-line assistant."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys

from mediscan.assessment.conversation import ConversationEngine, SessionStatus
from mediscan.assessment.media import MediaPayload, load_image
from mediscan.assessment.oracle import DiagnosticOracle
from mediscan.backup import build_backup, default_backup_name, write_backup
from mediscan.config import AssistantConfig, load_config
from mediscan.emergency.contacts import DEFAULT_EMERGENCY_NUMBER
from mediscan.emergency.guide import GuideSession
from mediscan.emergency.triage_machine import (
    COMMON_EMERGENCIES,
    TRIAGE_QUESTIONS,
    EmergencyMode,
    EmergencyTriage,
    record_emergency_call,
)
from mediscan.errors import GuideLoadError, InputError, MediscanError, OracleError, RecordStoreError
from mediscan.localization import LANGUAGES
from mediscan.lookup.specialist import SpecialistLookup
from mediscan.medication import MedicationScan, load_cabinet, medication_record, save_cabinet
from mediscan.profiles import ProfileRegistry, load_profiles, save_profiles
from mediscan.records.client import RemoteRecordStore
from mediscan.records.store import JsonFileRecordStore, RecordStore
from mediscan.records.timeline import TIME_RANGES, filter_records
from mediscan.records.types import GeoPoint, LookupLocation, PatientCategory, PatientContext
from mediscan.utils.logging import setup_logging

logger = logging.getLogger(__name__)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse CLI arguments."""
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--language", type=str, default=None, choices=sorted(LANGUAGES),
                        help="Output language code (default MEDISCAN_LANGUAGE or en)")
    common.add_argument("--log-level", type=str, default=None, choices=["DEBUG", "INFO", "WARNING", "ERROR"],
                        help="Log level (default MEDISCAN_LOG_LEVEL or INFO)")
    common.add_argument("--records", type=str, default=None,
                        help="Record file path (default MEDISCAN_RECORDS_PATH or data/records.json)")

    profile = argparse.ArgumentParser(add_help=False)
    profile.add_argument("--profile-id", type=str, default=None,
                         help="Profile id (default: the active profile, see 'mediscan profile')")
    profile.add_argument("--profile-name", type=str, default=None,
                         help="Display name for an unregistered --profile-id")
    profile.add_argument("--profile-category", choices=[c.value for c in PatientCategory], default=None,
                         help="Category for an unregistered --profile-id (default self)")
    profile.add_argument("--profile-age", type=int, default=None, help="Age for an unregistered --profile-id")

    p = argparse.ArgumentParser(
        prog="mediscan",
        description="MediScan - symptom interview, emergency triage, first-aid guides, medication scanner and health timeline",
    )
    sub = p.add_subparsers(dest="command", required=True)

    chat = sub.add_parser("chat", parents=[common, profile], help="Interactive symptom interview")
    chat.add_argument("--image", action="append", default=[], metavar="PATH",
                      help="Image to attach to the first message (repeatable)")
    chat.add_argument("--location", type=str, default="", help="Where to look for specialists (city, address)")
    chat.add_argument("--coords", type=str, default="", metavar="LAT,LNG",
                      help="Coordinates for specialist lookup, e.g. 52.5200,13.4050")

    triage = sub.add_parser("triage", parents=[common, profile], help="Rapid yes/no emergency questionnaire")
    triage.add_argument("--location", type=str, default="", help="Location stored with an emergency call record")

    guide = sub.add_parser("guide", parents=[common], help="Fetch and walk a first-aid guide")
    guide.add_argument("name", type=str,
                       help=f"Emergency name or key ({', '.join(COMMON_EMERGENCIES)})")

    timeline = sub.add_parser("timeline", parents=[common, profile], help="List health records")
    timeline.add_argument("--kind", type=str, default="all",
                          choices=["all", "symptom", "medication", "emergency", "appointment", "note"])
    timeline.add_argument("--range", dest="time_range", default="all", choices=list(TIME_RANGES))
    timeline.add_argument("--query", type=str, default="", help="Case-insensitive text filter")
    timeline.add_argument("--insights", action="store_true", help="Ask the oracle for patterns over the records")

    serve = sub.add_parser("serve", parents=[common], help="Run the record-store HTTP server")
    serve.add_argument("--host", type=str, default="127.0.0.1", help="Bind host (default 127.0.0.1)")
    serve.add_argument("--port", type=int, default=8000, help="Bind port (default 8000)")

    scan = sub.add_parser("scan", parents=[common, profile], help="Identify a medication from a photo")
    scan.add_argument("image", type=str, help="Photo of the packaging or pill")
    scan.add_argument("--save", action="store_true",
                      help="Save to the medicine cabinet and add a medication record")

    cabinet = sub.add_parser("cabinet", parents=[common, profile], help="List or remove saved medications")
    cabinet.add_argument("--remove", type=str, default=None, metavar="ID", help="Remove a saved medication")

    prof = sub.add_parser("profile", parents=[common], help="Manage profiles")
    prof_sub = prof.add_subparsers(dest="profile_command")
    prof_sub.add_parser("list", help="List profiles (default)")
    prof_add = prof_sub.add_parser("add", help="Add a profile and make it active")
    prof_add.add_argument("name", type=str)
    prof_add.add_argument("--category", choices=[c.value for c in PatientCategory], default="child")
    prof_add.add_argument("--age", type=int, default=None)
    prof_use = prof_sub.add_parser("use", help="Switch the active profile")
    prof_use.add_argument("id", type=str)
    prof_rm = prof_sub.add_parser("remove", help="Forget a profile (its records are kept)")
    prof_rm.add_argument("id", type=str)

    export = sub.add_parser("export", parents=[common], help="Write profiles, records and medications to JSON")
    export.add_argument("--output", type=str, default=None,
                        help="Output file (default mediscan_backup_<date>.json)")

    return p.parse_args(argv)


def make_store(config: AssistantConfig) -> RecordStore:
    """Remote store when a URL is configured, else the local JSON file."""
    if config.record_store_url:
        return RemoteRecordStore(config.record_store_url)
    return JsonFileRecordStore(config.records_path)


def patient_from_args(args: argparse.Namespace, registry: ProfileRegistry | None = None) -> PatientContext:
    """Active profile, a registered ``--profile-id``, or an ad hoc one built from the flags."""
    if registry is None:
        registry = ProfileRegistry()
    if args.profile_id is None:
        return registry.active
    registered = registry.find(args.profile_id)
    if registered is not None:
        return registered
    return PatientContext(
        profile_id=args.profile_id,
        name=args.profile_name or args.profile_id,
        category=PatientCategory(args.profile_category or "self"),
        age=args.profile_age,
    )


def _parse_coords(text: str) -> GeoPoint | None:
    if not text:
        return None
    try:
        lat, lng = (float(v) for v in text.split(","))
    except ValueError as e:
        raise InputError(f"--coords must be LAT,LNG, got {text!r}") from e
    return GeoPoint(lat, lng)


async def _ask(prompt: str) -> str:
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(None, input, prompt)


# ---------------------------------------------------------------------------
# chat
# ---------------------------------------------------------------------------

async def run_chat(args: argparse.Namespace, config: AssistantConfig) -> int:
    store = make_store(config)
    engine = ConversationEngine(
        DiagnosticOracle.from_config(config),
        store,
        SpecialistLookup.from_config(config),
        max_unresolved_rounds=config.max_unresolved_rounds,
    )
    context = patient_from_args(args, load_profiles(config.profiles_path))
    location = LookupLocation(text=args.location, coords=_parse_coords(args.coords))
    for path in args.image:
        engine.attach(load_image(path, max_width=config.image_max_width, quality=config.image_quality))

    print(f"Consulting for: {context.name}. Describe your symptoms ('/image PATH' attaches, 'quit' exits).")
    while True:
        try:
            text = (await _ask("> ")).strip()
        except EOFError:
            break
        if text.lower() in ("quit", "exit"):
            break
        if text.startswith("/image "):
            try:
                payload: MediaPayload = load_image(
                    text[len("/image "):].strip(),
                    max_width=config.image_max_width,
                    quality=config.image_quality,
                )
            except InputError as e:
                print(f"! {e}")
                continue
            engine.attach(payload)
            print(f"  attached {payload.ref} ({payload.width}x{payload.height})")
            continue
        try:
            outcome = await engine.submit_turn(text, context=context, language=config.language, location=location)
        except InputError as e:
            print(f"! {e}")
            continue
        except RecordStoreError as e:
            print(f"Doctor: {engine.turns[-1].text} ({e})")
            continue

        if outcome.reply is not None:
            print(f"Doctor: {outcome.reply.text}")
        if outcome.status is SessionStatus.COMPLETE and outcome.record is not None:
            record = outcome.record
            level = record.triage_level.value if record.triage_level else "Low"
            print(f"\n== {record.summary} (triage: {level}) ==\n\n{record.details}\n")
            doctors = await engine.wait_for_lookup()
            if doctors:
                print(f"Specialists near {location.describe() or 'you'}:")
            for d in doctors:
                print(f"  - {d.name}: {d.address}" + (f" ({d.phone})" if d.phone else ""))
            print("\nSaved to timeline. Describe something new to start another check.")
        elif outcome.status is SessionStatus.ABANDONED:
            answer = (await _ask("Save this conversation as a note? [y/N] ")).strip().lower()
            if answer.startswith("y"):
                note = engine.save_as_note(context)
                print(f"Saved note {note.id}.")
    return 0


# ---------------------------------------------------------------------------
# triage / guide
# ---------------------------------------------------------------------------

async def run_triage(args: argparse.Namespace, config: AssistantConfig) -> int:
    machine = EmergencyTriage()
    question = machine.start_triage()
    while machine.mode is EmergencyMode.TRIAGE and question is not None:
        print(f"[{machine.question_index + 1}/{len(TRIAGE_QUESTIONS)}] {question.text}")
        answer = (await _ask("yes/no > ")).strip().lower()
        machine.answer(answer.startswith("y"))
        question = machine.current_question

    if machine.mode is EmergencyMode.RED_ALERT:
        print(f"\n!!! CALL {DEFAULT_EMERGENCY_NUMBER} NOW !!!\n")
        placed = (await _ask("Did you place the call? [y/N] ")).strip().lower()
        if placed.startswith("y"):
            record = record_emergency_call(
                make_store(config),
                patient_from_args(args, load_profiles(config.profiles_path)),
                DEFAULT_EMERGENCY_NUMBER,
                args.location,
            )
            print(f"Emergency call recorded ({record.id}).")
        return 2
    print("No critical signs reported. Use 'mediscan chat' to describe symptoms.")
    return 0


def _print_step(session: GuideSession) -> None:
    step = session.current_step
    print(f"\nStep {session.step_index + 1}/{len(session.guide.steps)}: {step.title}\n  {step.instruction}")
    if step.warning:
        print(f"  WARNING: {step.warning}")
    if step.has_timer and step.timer_seconds:
        print(f"  Timer: {step.timer_seconds}s ('t' to start/stop)")


async def run_guide(args: argparse.Namespace, config: AssistantConfig) -> int:
    machine = EmergencyTriage(DiagnosticOracle.from_config(config))
    try:
        session = await machine.load_guide(args.name, config.language)
    except GuideLoadError as e:
        print(f"! {e}")
        return 1
    print(f"== {session.guide.title} [{session.guide.severity}] ==")
    _print_step(session)
    while True:
        try:
            cmd = (await _ask("[n]ext [p]rev [t]imer [q]uit > ")).strip().lower()
        except EOFError:
            break
        if cmd == "q":
            break
        if cmd == "n":
            if session.is_last:
                print("\nAfter the emergency:")
                for item in session.guide.post_emergency:
                    print(f"  - {item}")
            session.next_step()
        elif cmd == "p":
            session.previous_step()
        elif cmd == "t":
            running = session.toggle_timer()
            print("  timer started" if running else f"  timer stopped at {session.format_timer()}")
            continue
        _print_step(session)
    return 0


# ---------------------------------------------------------------------------
# timeline / serve
# ---------------------------------------------------------------------------

async def run_timeline(args: argparse.Namespace, config: AssistantConfig) -> int:
    context = patient_from_args(args, load_profiles(config.profiles_path))
    store = make_store(config)
    records = filter_records(
        store.list_by_profile(context.profile_id),
        kind=args.kind,
        time_range=args.time_range,
        query=args.query,
    )
    if not records:
        print("No records.")
    for r in records:
        level = f" [{r.triage_level.value}]" if r.triage_level else ""
        print(f"{r.id[:8]}  {r.kind.value:<11} {r.summary}{level}")

    if args.insights:
        oracle = DiagnosticOracle.from_config(config)
        loop = asyncio.get_running_loop()
        try:
            insight = await loop.run_in_executor(None, oracle.generate_insights, records, config.language)
        except OracleError as e:
            print(f"! Could not generate insights: {e}")
            return 1
        print(f"\n{insight.summary}")
        for pattern in insight.patterns:
            print(f"  - [{pattern.type}/{pattern.severity}] {pattern.title}: {pattern.description}")
        for rec in insight.recommendations:
            print(f"  * {rec}")
    return 0


def run_serve(args: argparse.Namespace, config: AssistantConfig) -> int:
    import uvicorn

    from mediscan.records.server import create_default_app

    logger.info("Serving records on %s:%d", args.host, args.port)
    uvicorn.run(create_default_app(config), host=args.host, port=args.port, log_level=config.log_level.lower())
    return 0


# ---------------------------------------------------------------------------
# scan / cabinet
# ---------------------------------------------------------------------------

def _print_scan(scan: MedicationScan) -> None:
    generic = f" ({scan.generic_name})" if scan.generic_name else ""
    print(f"== {scan.name}{generic} - {scan.dosage} [{scan.form or 'unknown form'}] ==")
    if scan.is_expired:
        print("  EXPIRED: do not use.")
    print(f"  Treats: {scan.treats_body_part}" + (f" ({', '.join(scan.treats_conditions)})" if scan.treats_conditions else ""))
    print(f"  Usage: {scan.usage_instructions}")
    if scan.missed_dose:
        print(f"  Missed dose: {scan.missed_dose}")
    for warning in scan.warnings:
        print(f"  ! {warning}")
    for i in scan.interactions:
        print(f"  Interaction with {i.drug_name} [{i.severity}]: {i.description} {i.action}".rstrip())


async def run_scan(args: argparse.Namespace, config: AssistantConfig) -> int:
    context = patient_from_args(args, load_profiles(config.profiles_path))
    payload = load_image(args.image, max_width=config.image_max_width, quality=config.image_quality)
    cabinet = load_cabinet(config.cabinet_path)
    oracle = DiagnosticOracle.from_config(config)
    loop = asyncio.get_running_loop()
    try:
        scan = await loop.run_in_executor(
            None, oracle.scan_medication, payload, cabinet.names_for(context.profile_id), config.language
        )
    except OracleError as e:
        print(f"! Could not identify the medication: {e}")
        return 1
    _print_scan(scan)

    if args.save:
        saved = cabinet.add(scan, context.profile_id, image=payload.data)
        save_cabinet(cabinet, config.cabinet_path)
        make_store(config).append(medication_record(scan, context, image=payload.data))
        print(f"Saved to {context.name}'s cabinet ({saved.id[:8]}) and timeline.")
    return 2 if scan.has_serious_interaction else 0


def run_cabinet(args: argparse.Namespace, config: AssistantConfig) -> int:
    context = patient_from_args(args, load_profiles(config.profiles_path))
    cabinet = load_cabinet(config.cabinet_path)
    if args.remove:
        matches = [m for m in cabinet.for_profile(context.profile_id) if m.id.startswith(args.remove)]
        if len(matches) != 1:
            raise InputError(f"no single saved medication matches {args.remove!r}")
        cabinet.remove(matches[0].id)
        save_cabinet(cabinet, config.cabinet_path)
        print(f"Removed {matches[0].scan.name}.")
        return 0
    items = cabinet.for_profile(context.profile_id)
    if not items:
        print(f"{context.name}'s cabinet is empty.")
    for m in items:
        print(f"{m.id[:8]}  {m.scan.name} {m.scan.dosage}")
    return 0


# ---------------------------------------------------------------------------
# profile / export
# ---------------------------------------------------------------------------

def run_profile(args: argparse.Namespace, config: AssistantConfig) -> int:
    registry = load_profiles(config.profiles_path)
    command = args.profile_command or "list"
    if command == "add":
        profile = registry.add(args.name, PatientCategory(args.category), args.age)
        print(f"Added {profile.name} ({profile.profile_id}); now active.")
    elif command == "use":
        print(f"Active profile: {registry.switch(args.id).name}")
    elif command == "remove":
        registry.remove(args.id)
        print(f"Removed profile {args.id}; its records are kept.")
    else:
        for p in registry:
            marker = "*" if p.profile_id == registry.active_id else " "
            age = f", {p.age}" if p.age is not None else ""
            print(f"{marker} {p.profile_id:<12} {p.name} ({p.category.value}{age})")
        return 0
    save_profiles(registry, config.profiles_path)
    return 0


def run_export(args: argparse.Namespace, config: AssistantConfig) -> int:
    payload = build_backup(
        load_profiles(config.profiles_path),
        make_store(config),
        load_cabinet(config.cabinet_path),
    )
    path = write_backup(payload, args.output or default_backup_name())
    print(f"Exported {len(payload['records'])} record(s) to {path}")
    return 0


SYNC_RUNNERS = {
    "serve": run_serve,
    "cabinet": run_cabinet,
    "profile": run_profile,
    "export": run_export,
}

ASYNC_RUNNERS = {
    "chat": run_chat,
    "triage": run_triage,
    "guide": run_guide,
    "timeline": run_timeline,
    "scan": run_scan,
}


def main(argv: list[str] | None = None) -> int:
    """Run one subcommand. Returns the process exit code."""
    args = parse_args(argv)
    config = load_config(
        language=args.language,
        log_level=args.log_level,
        records_path=args.records,
    )
    setup_logging(config.log_level)

    try:
        if args.command in SYNC_RUNNERS:
            return SYNC_RUNNERS[args.command](args, config)
        return asyncio.run(ASYNC_RUNNERS[args.command](args, config))
    except KeyboardInterrupt:
        return 130
    except MediscanError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())

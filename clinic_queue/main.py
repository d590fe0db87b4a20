"""Operator console for the clinic queue."""

import shlex
import sys

from rich.console import Console
from rich.table import Table

from clinic_queue.broadcaster import ChangeEvent
from clinic_queue.engine import QueueEngine
from clinic_queue.errors import QueueError, ValidationError
from clinic_queue.logging_config import setup_logging
from clinic_queue.state_machine import Status

console = Console()

STATUS_ALIASES = {
    "waiting": Status.WAITING,
    "wait": Status.WAITING,
    "opd": Status.IN_CONSULTATION,
    "consult": Status.IN_CONSULTATION,
    "in_consultation": Status.IN_CONSULTATION,
    "done": Status.COMPLETED,
    "completed": Status.COMPLETED,
}

HELP = """\
[bold]Commands[/bold]
  add NAME AGE GENDER CITY [MOBILE] [TYPE]   register (quote names with spaces)
  list                                       show today's board
  status REF waiting|opd|done                change status
  up REF / down REF                          move one place in the waiting queue
  move REF TARGET_REF                        move onto another entry's place
  finalize REF "NOTES" ["MEDICINES"]         save consultation and complete
  edit REF field=value ...                   edit entry fields
  delete REF                                 remove an entry
  chat REF OPERATOR|DOCTOR TEXT              send a message
  read REF                                   show conversation and clear alert
  history REF                                past visits of the person
  pause REASON / resume                      pause or resume consultation intake
  quit

REF is an id prefix or #QUEUE_NUMBER."""


def resolve_entry(engine: QueueEngine, ref: str):
    """Find one of today's entries by #queue number or id prefix."""
    entries = engine.get_entries()
    if ref.startswith("#"):
        matches = [e for e in entries if str(e.queue_number) == ref[1:] and e.queue_number]
    else:
        matches = [e for e in entries if e.id.startswith(ref)]
    if not matches:
        raise ValidationError(f"No entry today matches {ref!r}")
    if len(matches) > 1:
        raise ValidationError(f"{ref!r} matches {len(matches)} entries, use a longer id prefix")
    return matches[0]


def _require(args: list[str], count: int, usage: str) -> None:
    if len(args) < count:
        raise ValidationError(f"usage: {usage}")


def render_board(engine: QueueEngine) -> Table:
    snapshot = engine.get_queue()
    title = f"Queue {snapshot.day}  |  active patients: {snapshot.active_patient_count}"
    if snapshot.intake.is_paused:
        title += f"  |  [red]INTAKE PAUSED: {snapshot.intake.reason or '-'}[/red]"
    table = Table(title=title)
    table.add_column("Column")
    table.add_column("Pos", justify="right")
    table.add_column("#", justify="right")
    table.add_column("Id")
    table.add_column("Name")
    table.add_column("Type")
    table.add_column("In")
    table.add_column("Out")
    table.add_column("Chat")

    columns = [
        ("Waiting", snapshot.waiting),
        ("OPD", snapshot.in_consultation),
        ("Completed", snapshot.completed),
    ]
    for label, entries in columns:
        for e in entries:
            table.add_row(
                label,
                "pin" if e.pinned and e.status == Status.WAITING else str(e.sort_position or ""),
                str(e.queue_number or ""),
                e.id[:8],
                e.name,
                e.type.value,
                (e.in_time or "")[11:16],
                (e.out_time or "")[11:16],
                "[yellow]new[/yellow]" if e.has_unread_alert else "",
            )
    return table


def cmd_add(engine: QueueEngine, args: list[str]) -> str:
    _require(args, 4, "add NAME AGE GENDER CITY [MOBILE] [TYPE]")
    draft = {"name": args[0], "age": args[1], "gender": args[2], "city": args[3]}
    if len(args) > 4:
        draft["mobile"] = args[4]
    if len(args) > 5:
        draft["type"] = args[5]
    created = engine.create_entry(draft)
    number = f"queue #{created.queue_number}" if created.queue_number else "no queue number"
    return f"Registered {created.id[:8]} ({number})"


def cmd_list(engine: QueueEngine, args: list[str]) -> None:
    console.print(render_board(engine))


def cmd_status(engine: QueueEngine, args: list[str]) -> str:
    _require(args, 2, "status REF waiting|opd|done")
    entry = resolve_entry(engine, args[0])
    target = STATUS_ALIASES.get(args[1].lower(), args[1])
    result = engine.change_status(entry.id, target)
    if result.changed:
        return f"{entry.name} is now {engine.get_entry(entry.id).status.value}"
    if result.reason == "paused":
        return f"Intake paused ({engine.get_intake_state().reason}), {entry.name} stays in the queue"
    return f"No change ({result.reason})"


def _move_message(result) -> str:
    return "Moved" if result.success else f"Not moved ({result.reason})"


def cmd_up(engine: QueueEngine, args: list[str]) -> str:
    _require(args, 1, "up REF")
    return _move_message(engine.move_adjacent(resolve_entry(engine, args[0]).id, "up"))


def cmd_down(engine: QueueEngine, args: list[str]) -> str:
    _require(args, 1, "down REF")
    return _move_message(engine.move_adjacent(resolve_entry(engine, args[0]).id, "down"))


def cmd_move(engine: QueueEngine, args: list[str]) -> str:
    _require(args, 2, "move REF TARGET_REF")
    source = resolve_entry(engine, args[0])
    target = resolve_entry(engine, args[1])
    return _move_message(engine.move_to_target(source.id, target.id))


def cmd_finalize(engine: QueueEngine, args: list[str]) -> str:
    _require(args, 2, 'finalize REF "NOTES" ["MEDICINES"]')
    entry = resolve_entry(engine, args[0])
    fields = {"notes": args[1]}
    if len(args) > 2:
        fields["medicines"] = args[2]
    engine.finalize_consultation(entry.id, fields)
    return f"Consultation for {entry.name} saved"


def cmd_edit(engine: QueueEngine, args: list[str]) -> str:
    _require(args, 2, "edit REF field=value ...")
    entry = resolve_entry(engine, args[0])
    updates = {}
    for pair in args[1:]:
        key, sep, value = pair.partition("=")
        if not sep:
            raise ValidationError(f"Expected field=value, got {pair!r}")
        updates[key.strip()] = value or None
    engine.update_entry(entry.id, updates)
    return f"Updated {entry.name}"


def cmd_delete(engine: QueueEngine, args: list[str]) -> str:
    _require(args, 1, "delete REF")
    entry = resolve_entry(engine, args[0])
    engine.delete_entry(entry.id)
    return f"Deleted {entry.name}"


def cmd_chat(engine: QueueEngine, args: list[str]) -> str:
    _require(args, 3, "chat REF OPERATOR|DOCTOR TEXT")
    entry = resolve_entry(engine, args[0])
    engine.add_message(entry.id, args[1], " ".join(args[2:]))
    return "Message sent"


def cmd_read(engine: QueueEngine, args: list[str]) -> None:
    _require(args, 1, "read REF")
    entry = resolve_entry(engine, args[0])
    messages = engine.get_messages(entry.id)
    if not messages:
        console.print("[dim]No discussion history yet.[/dim]")
    for m in messages:
        console.print(f"[bold]{m.sender.value}[/bold] [dim]{m.sent_at[11:16]}[/dim] {m.text}")
    engine.mark_chat_read(entry.id)


def cmd_history(engine: QueueEngine, args: list[str]) -> None:
    _require(args, 1, "history REF")
    entry = resolve_entry(engine, args[0])
    if not entry.person_id:
        console.print("[dim]No person record linked (registered without mobile).[/dim]")
        return
    history = engine.get_person_history(entry.person_id)
    table = Table(title=f"{history.person.name}: {history.total_visits} visit(s)")
    for column in ("Day", "#", "Type", "Status", "Notes", "Medicines"):
        table.add_column(column)
    for v in history.visits:
        table.add_row(v.day, str(v.queue_number or ""), v.type.value, v.status.value,
                      v.notes or "", v.medicines or "")
    console.print(table)


def cmd_pause(engine: QueueEngine, args: list[str]) -> str:
    reason = " ".join(args)
    engine.set_intake_pause(True, reason)
    return f"Intake paused: {reason or '-'}"


def cmd_resume(engine: QueueEngine, args: list[str]) -> str:
    engine.set_intake_pause(False)
    return "Intake resumed"


def cmd_help(engine: QueueEngine, args: list[str]) -> None:
    console.print(HELP)


# Command handlers mapping
COMMAND_HANDLERS = {
    "add": cmd_add,
    "list": cmd_list,
    "ls": cmd_list,
    "status": cmd_status,
    "up": cmd_up,
    "down": cmd_down,
    "move": cmd_move,
    "finalize": cmd_finalize,
    "edit": cmd_edit,
    "delete": cmd_delete,
    "chat": cmd_chat,
    "read": cmd_read,
    "history": cmd_history,
    "pause": cmd_pause,
    "resume": cmd_resume,
    "help": cmd_help,
}


def process_command(engine: QueueEngine, line: str) -> str | None:
    """Parse and run one console command. Returns a status line to print."""
    try:
        parts = shlex.split(line)
    except ValueError as e:
        raise ValidationError(str(e)) from e
    if not parts:
        return None
    handler = COMMAND_HANDLERS.get(parts[0].lower())
    if handler is None:
        raise ValidationError(f"Unknown command {parts[0]!r}, type 'help'")
    return handler(engine, parts[1:])


def print_event(event: ChangeEvent) -> None:
    ref = event.entry_id[:8] if event.entry_id else ""
    console.print(f"[dim]event {event.type.value} {ref} {dict(event.payload)}[/dim]")


def main():
    """Main console loop."""
    setup_logging(console=console)
    engine = QueueEngine()
    engine.subscribe(print_event)

    console.print("[bold blue]ClinicFlow queue console[/bold blue]")
    console.print("Type 'help' for commands, 'quit' or 'exit' to leave.\n")

    is_tty = sys.stdin.isatty()

    while True:
        try:
            line = console.input("[bold green]queue>[/bold green] ").strip()
            # Echo input when stdin is piped (not interactive)
            if not is_tty and line:
                console.print(f"[dim]{line}[/dim]")
        except (EOFError, KeyboardInterrupt):
            console.print("\n[bold blue]Goodbye![/bold blue]")
            break

        if not line:
            continue

        if line.lower() in ("quit", "exit"):
            console.print("[bold blue]Goodbye![/bold blue]")
            break

        try:
            message = process_command(engine, line)
            if message:
                console.print(message)
        except QueueError as e:
            style = "yellow" if e.retryable else "red"
            console.print(f"[bold {style}]{e.code}:[/bold {style}] {e.reason}\n")


if __name__ == "__main__":
    main()

# src/taskboard/cli/commands.py

from __future__ import annotations

import contextlib
import inspect
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field, replace
from datetime import date
from typing import cast

from ..board.board import NoticeLevel, TaskBoard
from ..errors import TaskBoardError
from ..tasks.labels import unique_assignees, unique_labels
from ..tasks.task_codec import parse_due_date
from ..tasks.task_models import Assignee, Priority, Task, TaskStatus
from ..view.filters import ALL, DEFAULT_FILTERS, NO_LABEL, UNASSIGNED, DueFilter, DuePreset, count_active_filters
from ..view.lanes import GroupBy
from ..view.sorting import SortField, SortOrder, SortState

CommandEmitter = Callable[[str], None]
CommandHandler2 = Callable[["CommandContext", list[str]], Awaitable[str]]
CommandHandler3 = Callable[["CommandContext", list[str], CommandEmitter | None], Awaitable[str]]
CommandHandler = CommandHandler2 | CommandHandler3

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class CommandContext:
    """What a command sees: the board plus the numbering of the last /list output."""

    board: TaskBoard
    listing: list[str] = field(default_factory=list)


class CommandRegistry:
    """Simple slash-command registry used by connectors (/help, /add, ...)."""

    def __init__(self) -> None:
        self._handlers: dict[str, CommandHandler] = {}
        self._help: dict[str, str] = {}

    def register(
        self,
        name: str,
        handler: CommandHandler,
        help_text: str,
        aliases: list[str] | None = None,
    ) -> None:
        aliases = aliases or []
        key = name.lower()
        self._handlers[key] = handler
        self._help[key] = help_text
        for alias in aliases:
            self._handlers[alias.lower()] = handler

    async def handle(
        self,
        ctx: CommandContext,
        line: str,
        emit: CommandEmitter | None = None,
    ) -> str | None:
        """
        Handle a string like "/command args".
        Returns a reply string or None if not a command.
        """
        if not line.startswith("/"):
            return None

        parts = line[1:].split()
        if not parts:
            return "Empty command. Use /help to list available commands."

        name = parts[0].lower()
        args = parts[1:]

        handler = self._handlers.get(name)
        if not handler:
            return f"Unknown command: /{name}. Use /help to list available commands."

        try:
            nparams = len(inspect.signature(handler).parameters)
        except (TypeError, ValueError):
            nparams = 3

        try:
            if nparams >= 3:
                h3 = cast(CommandHandler3, handler)
                return await h3(ctx, args, emit)
            h2 = cast(CommandHandler2, handler)
            return await h2(ctx, args)
        except TaskBoardError as exc:
            logger.debug("Command /%s rejected: %s", name, exc)
            return f"Error: {exc}"

    def build_help(self) -> str:
        lines = ["Available commands:"]
        for name, help_text in self._help.items():
            lines.append(f"  /{name} - {help_text}")
        return "\n".join(lines)


registry = CommandRegistry()


# ---- parsing helpers ----

_STATUS_ALIASES: dict[str, TaskStatus] = {
    "todo": TaskStatus.PENDING,
    "pending": TaskStatus.PENDING,
    "doing": TaskStatus.IN_PROGRESS,
    "progress": TaskStatus.IN_PROGRESS,
    "in_progress": TaskStatus.IN_PROGRESS,
    "done": TaskStatus.DONE,
}

_SORT_ALIASES: dict[str, SortField] = {
    "created": SortField.CREATED_AT,
    "created_at": SortField.CREATED_AT,
    "due": SortField.DUE_DATE,
    "due_date": SortField.DUE_DATE,
    "priority": SortField.PRIORITY,
}


class UsageError(TaskBoardError):
    """Malformed command arguments."""


def parse_status(raw: str) -> TaskStatus:
    status = _STATUS_ALIASES.get(raw.lower())
    if status is None:
        raise UsageError(f"Unknown status {raw!r} (use todo, doing or done)")
    return status


def parse_priority(raw: str) -> Priority:
    try:
        return Priority(raw.lower())
    except ValueError:
        raise UsageError(f"Unknown priority {raw!r} (use low, medium, high or urgent)") from None


def parse_date_arg(raw: str) -> date | None:
    if raw.lower() in ("none", "-", "clear"):
        return None
    parsed = parse_due_date(raw)
    if parsed is None:
        raise UsageError(f"Bad date {raw!r} (use YYYY-MM-DD)")
    return parsed


def resolve_task(ctx: CommandContext, ref: str) -> Task:
    """A task reference is a number from the last /list, a full id or a unique id prefix."""
    board = ctx.board
    if ref.isdigit():
        idx = int(ref) - 1
        if 0 <= idx < len(ctx.listing):
            return board.get_task(ctx.listing[idx])
        raise UsageError(f"No task #{ref} in the last listing (run /list)")

    matches = [t for t in board.tasks if t.id == ref or t.id.startswith(ref)]
    if len(matches) == 1:
        return matches[0]
    if not matches:
        raise UsageError(f"No task matches {ref!r}")
    raise UsageError(f"Ambiguous task reference {ref!r}")


def _need(args: list[str], n: int, usage: str) -> None:
    if len(args) < n:
        raise UsageError(f"Usage: {usage}")


def _fmt_task(n: int, task: Task, ctx: CommandContext) -> str:
    board = ctx.board
    parts = [f"{n:>3}. [{task.status.display_name}] {task.title}"]
    if task.priority != Priority.MEDIUM:
        parts.append(f"!{task.priority.value}")
    if task.due_date is not None:
        parts.append(f"due {task.due_date.isoformat()}")
    if task.labels:
        parts.append(" ".join(f"#{lbl.name}" for lbl in task.labels))
    if task.assignee is not None:
        parts.append(f"@{task.assignee.name}")
    if task.id in board.selection:
        parts.append("(selected)")
    status = board.editor_status(task.id)
    if status is not None and status.value != "idle":
        parts.append(f"<{status.value}>")
    if board.sync_indicator(task.id).enabled:
        parts.append("[cal]")
    return "  ".join(parts)


# ---- handlers ----


async def cmd_help(ctx: CommandContext, args: list[str]) -> str:
    return registry.build_help()


async def cmd_add(ctx: CommandContext, args: list[str]) -> str:
    """
    /add Buy milk #errands !high due:2026-05-01 @alice
    """
    _need(args, 1, "/add <title> [#label] [!priority] [due:YYYY-MM-DD] [@assignee]")
    words: list[str] = []
    labels: list[str] = []
    priority = Priority.MEDIUM
    due: date | None = None
    assignee: Assignee | None = None

    for tok in args:
        if tok.startswith("#") and len(tok) > 1:
            labels.append(tok[1:])
        elif tok.startswith("!") and len(tok) > 1:
            priority = parse_priority(tok[1:])
        elif tok.lower().startswith("due:"):
            due = parse_date_arg(tok[4:])
        elif tok.startswith("@") and len(tok) > 1:
            assignee = Assignee(id=tok[1:].lower(), name=tok[1:])
        else:
            words.append(tok)

    task = await ctx.board.create_task(
        " ".join(words),
        priority=priority,
        due_date=due,
        labels=labels,
        assignee=assignee,
    )
    if task is None:
        return "Task was not saved."
    return f"Created {task.id}: {task.title}"


async def cmd_list(ctx: CommandContext, args: list[str]) -> str:
    board = ctx.board
    lanes = board.lanes()
    ctx.listing = []
    lines: list[str] = []
    for lane in lanes:
        lines.append(f"== {lane.title} ({len(lane)}) ==")
        for task in lane.tasks:
            ctx.listing.append(task.id)
            lines.append(_fmt_task(len(ctx.listing), task, ctx))

    if not ctx.listing:
        lines.append("No tasks match the current view.")

    active = count_active_filters(board.filters)
    if active:
        lines.append(f"({active} filter(s) active, {len(board.tasks) - len(board.visible_tasks())} task(s) hidden)")
    hidden = board.hidden_selected_count()
    if hidden:
        lines.append(f"({hidden} selected task(s) hidden by filters)")
    return "\n".join(lines)


async def cmd_move(ctx: CommandContext, args: list[str]) -> str:
    _need(args, 2, "/move <task> <todo|doing|done>")
    task = resolve_task(ctx, args[0])
    moved = await ctx.board.move_task(task.id, parse_status(args[1]))
    return "Move failed." if moved is None else f"{moved.title} -> {moved.status.display_name}"


async def cmd_rename(ctx: CommandContext, args: list[str]) -> str:
    _need(args, 2, "/rename <task> <new title>")
    task = resolve_task(ctx, args[0])
    renamed = await ctx.board.rename_task(task.id, " ".join(args[1:]))
    return "Rename failed." if renamed is None else f"Renamed to: {renamed.title}"


async def cmd_delete(ctx: CommandContext, args: list[str]) -> str:
    _need(args, 1, "/delete <task>")
    task = resolve_task(ctx, args[0])
    ok = await ctx.board.delete_task(task.id)
    return f"Deleted: {task.title}" if ok else "Delete failed."


async def cmd_edit(ctx: CommandContext, args: list[str]) -> str:
    """
    /edit <task> title <text>
    /edit <task> desc <text>
    /edit <task> priority <low|medium|high|urgent>
    /edit <task> due <YYYY-MM-DD|none>
    /edit <task> assignee <name|none>
    /edit <task> label+ <name>  |  label- <name>
    """
    _need(args, 2, "/edit <task> <title|desc|priority|due|assignee|label+|label-> <value>")
    board = ctx.board
    task = resolve_task(ctx, args[0])
    what = args[1].lower()
    value = " ".join(args[2:])

    if what == "title":
        updated = board.edit_task(task.id, title=value)
    elif what in ("desc", "description"):
        updated = board.edit_task(task.id, description=value)
    elif what == "priority":
        _need(args, 3, "/edit <task> priority <low|medium|high|urgent>")
        updated = board.edit_task(task.id, priority=parse_priority(args[2]))
    elif what == "due":
        _need(args, 3, "/edit <task> due <YYYY-MM-DD|none>")
        updated = board.edit_task(task.id, due_date=parse_date_arg(args[2]))
    elif what == "assignee":
        if not value or value.lower() == "none":
            updated = board.edit_task(task.id, assignee=None)
        else:
            updated = board.edit_task(task.id, assignee=Assignee(id=value.lower(), name=value))
    elif what == "label+":
        updated = board.add_label(task.id, value)
    elif what == "label-":
        updated = board.remove_label(task.id, value)
    else:
        raise UsageError(f"Unknown field {what!r}")

    return f"Editing {updated.title} (autosave pending)."


async def cmd_undo(ctx: CommandContext, args: list[str]) -> str:
    return "Undone." if await ctx.board.undo() else "Nothing to undo."


async def cmd_redo(ctx: CommandContext, args: list[str]) -> str:
    return "Redone." if await ctx.board.redo() else "Nothing to redo."


async def cmd_filter(ctx: CommandContext, args: list[str]) -> str:
    """
    /filter                        -> show filters
    /filter clear
    /filter q <text>
    /filter label <name|none>      (toggles)
    /filter assignee <id|unassigned|all>
    /filter due <all|overdue|today|next7|none>
    /filter due <from> <to>
    /filter priority <p>           (toggles)
    """
    board = ctx.board
    f = board.filters

    if not args:
        return (
            "Filters:\n"
            f"  query: {f.query!r}\n"
            f"  labels: {', '.join(f.labels) or '-'}\n"
            f"  assignee: {f.assignee_id}\n"
            f"  due: {f.due.preset.value}\n"
            f"  priorities: {', '.join(p.value for p in f.priorities) or '-'}\n"
            f"  known labels: {', '.join(lbl.name for lbl in unique_labels(board.tasks)) or '-'}\n"
            f"  known assignees: {', '.join(f'{a.id} ({a.name})' for a in unique_assignees(board.tasks)) or '-'}"
        )

    sub = args[0].lower()
    rest = args[1:]

    if sub == "clear":
        board.filters = DEFAULT_FILTERS
    elif sub in ("q", "query", "search"):
        board.filters = replace(f, query=" ".join(rest))
    elif sub == "label":
        _need(rest, 1, "/filter label <name|none>")
        name = NO_LABEL if rest[0].lower() == "none" else " ".join(rest)
        key = name.lower()
        if any(x.lower() == key for x in f.labels):
            labels = tuple(x for x in f.labels if x.lower() != key)
        else:
            labels = (*f.labels, name)
        board.filters = replace(f, labels=labels)
    elif sub == "assignee":
        _need(rest, 1, "/filter assignee <id|unassigned|all>")
        raw = rest[0].lower()
        special = {"all": ALL, "unassigned": UNASSIGNED}
        board.filters = replace(f, assignee_id=special.get(raw, raw))
    elif sub == "due":
        _need(rest, 1, "/filter due <all|overdue|today|next7|none> | /filter due <from> <to>")
        if len(rest) >= 2:
            due = DueFilter(preset=DuePreset.RANGE, date_from=parse_date_arg(rest[0]), date_to=parse_date_arg(rest[1]))
        else:
            try:
                due = DueFilter(preset=DuePreset(rest[0].lower()))
            except ValueError:
                raise UsageError(f"Unknown due preset {rest[0]!r}") from None
        board.filters = replace(f, due=due)
    elif sub == "priority":
        _need(rest, 1, "/filter priority <low|medium|high|urgent>")
        p = parse_priority(rest[0])
        priorities = tuple(x for x in f.priorities if x != p) if p in f.priorities else (*f.priorities, p)
        board.filters = replace(f, priorities=priorities)
    else:
        raise UsageError(f"Unknown filter {sub!r}")

    return f"{count_active_filters(board.filters)} filter(s) active."


async def cmd_sort(ctx: CommandContext, args: list[str]) -> str:
    if not args:
        s = ctx.board.sort
        return f"Sorted by {s.field.value} {s.order.value}."
    sort_field = _SORT_ALIASES.get(args[0].lower())
    if sort_field is None:
        raise UsageError("Usage: /sort <created|due|priority> [asc|desc]")
    order = SortOrder.DESC
    if len(args) > 1:
        try:
            order = SortOrder(args[1].lower())
        except ValueError:
            raise UsageError("Order must be asc or desc") from None
    ctx.board.sort = SortState(field=sort_field, order=order)
    return f"Sorted by {sort_field.value} {order.value}."


async def cmd_group(ctx: CommandContext, args: list[str]) -> str:
    if not args:
        return f"Grouped by {ctx.board.group_by.value}."
    try:
        ctx.board.group_by = GroupBy(args[0].lower())
    except ValueError:
        raise UsageError("Usage: /group <none|assignee|priority|label>") from None
    return f"Grouped by {ctx.board.group_by.value}."


async def cmd_select(ctx: CommandContext, args: list[str]) -> str:
    """
    /select <task> [<task> ...]  -> toggle
    /select all                  -> select every visible task
    /select clear
    """
    sel = ctx.board.selection
    if not args:
        return f"{sel.count} task(s) selected."
    if args[0].lower() == "clear":
        sel.clear()
    elif args[0].lower() == "all":
        sel.select(t.id for t in ctx.board.visible_tasks())
    else:
        for ref in args:
            sel.toggle(resolve_task(ctx, ref).id)
    hidden = ctx.board.hidden_selected_count()
    suffix = f" ({hidden} hidden by filters)" if hidden else ""
    return f"{sel.count} task(s) selected{suffix}."


async def cmd_bulk(ctx: CommandContext, args: list[str], emit: CommandEmitter | None = None) -> str:
    """
    /bulk move <todo|doing|done>
    /bulk delete
    /bulk label+ <name>  |  /bulk label- <name>
    """
    _need(args, 1, "/bulk <move|delete|label+|label-> ...")
    board = ctx.board
    if not board.selection.is_active:
        return "Nothing selected. Use /select first."

    count = board.selection.count
    if emit:
        with contextlib.suppress(Exception):
            emit(f"[BULK] Applying to {count} task(s)...")

    sub = args[0].lower()
    if sub == "move":
        _need(args, 2, "/bulk move <todo|doing|done>")
        done = await board.bulk_move(parse_status(args[1]))
    elif sub == "delete":
        done = await board.bulk_delete()
    elif sub == "label+":
        _need(args, 2, "/bulk label+ <name>")
        done = await board.bulk_add_label(" ".join(args[1:]))
    elif sub == "label-":
        _need(args, 2, "/bulk label- <name>")
        done = await board.bulk_remove_label(" ".join(args[1:]))
    else:
        raise UsageError(f"Unknown bulk action {sub!r}")

    return f"Bulk {sub}: {len(done)} of {count} task(s) updated."


async def cmd_sync(ctx: CommandContext, args: list[str]) -> str:
    """
    /sync <task>                 -> show calendar sync state
    /sync <task> on [calendar]
    /sync <task> off
    /sync <task> calendar <id>
    """
    _need(args, 1, "/sync <task> [on [calendar]|off|calendar <id>]")
    board = ctx.board
    task = resolve_task(ctx, args[0])

    if len(args) == 1:
        ind = board.sync_indicator(task.id)
    elif args[1].lower() == "on":
        ind = await board.toggle_calendar_sync(task.id, True, calendar_id=args[2] if len(args) > 2 else None)
    elif args[1].lower() == "off":
        ind = await board.toggle_calendar_sync(task.id, False)
    elif args[1].lower() == "calendar":
        _need(args, 3, "/sync <task> calendar <id>")
        ind = await board.change_calendar(task.id, args[2])
    else:
        raise UsageError("Usage: /sync <task> [on [calendar]|off|calendar <id>]")

    return (
        f"Calendar sync for {task.title}: "
        f"{'ON' if ind.enabled else 'OFF'}"
        f"{', event linked' if ind.has_event else ''}"
        f"{', pending' if ind.pending else ''}"
    )


def _checklist_item_id(task: Task, ref: str) -> str:
    if not ref.isdigit() or not 1 <= int(ref) <= len(task.checklist):
        raise UsageError(f"No checklist item #{ref} on {task.title}")
    return task.checklist[int(ref) - 1].id


async def cmd_check(ctx: CommandContext, args: list[str]) -> str:
    """
    /check <task>                    -> list items (numbered from 1)
    /check <task> add <text>
    /check <task> done <n>           -> toggle
    /check <task> edit <n> <text>
    /check <task> rm <n>
    /check <task> move <n> <pos>
    """
    usage = "/check <task> [add <text>|done <n>|edit <n> <text>|rm <n>|move <n> <pos>]"
    _need(args, 1, usage)
    board = ctx.board
    task = resolve_task(ctx, args[0])
    sub = args[1].lower() if len(args) > 1 else ""

    if sub == "add":
        _need(args, 3, "/check <task> add <text>")
        item = await board.add_checklist_item(task.id, " ".join(args[2:]))
        return f"Added to {task.title}: {item.text}"
    if sub == "done":
        _need(args, 3, "/check <task> done <n>")
        item = await board.toggle_checklist_item(task.id, _checklist_item_id(task, args[2]))
        return f"[{'x' if item.done else ' '}] {item.text}"
    if sub == "edit":
        _need(args, 4, "/check <task> edit <n> <text>")
        item = await board.update_checklist_item(task.id, _checklist_item_id(task, args[2]), " ".join(args[3:]))
        return f"Updated: {item.text}"
    if sub in ("rm", "delete"):
        _need(args, 3, "/check <task> rm <n>")
        item_id = _checklist_item_id(task, args[2])
        await board.delete_checklist_item(task.id, item_id)
        return f"Removed item #{args[2]} from {task.title}."
    if sub == "move":
        _need(args, 4, "/check <task> move <n> <pos>")
        item_id = _checklist_item_id(task, args[2])
        if not args[3].isdigit() or not 1 <= int(args[3]) <= len(task.checklist):
            raise UsageError(f"Position must be 1..{len(task.checklist)}")
        order = [i.id for i in task.checklist if i.id != item_id]
        order.insert(int(args[3]) - 1, item_id)
        task = await board.reorder_checklist(task.id, order)
    elif sub:
        raise UsageError(f"Usage: {usage}")

    if not task.checklist:
        return f"{task.title}: checklist is empty."
    done = sum(1 for i in task.checklist if i.done)
    lines = [f"{task.title}: {done}/{len(task.checklist)} done"]
    for n, item in enumerate(task.checklist, start=1):
        lines.append(f"  {n}. [{'x' if item.done else ' '}] {item.text}")
    return "\n".join(lines)


async def cmd_notices(ctx: CommandContext, args: list[str]) -> str:
    """
    /notices                 -> list
    /notices dismiss <id>
    /notices clear
    """
    board = ctx.board
    if args and args[0].lower() == "clear":
        for n in board.notices:
            board.dismiss_notice(n.id)
        return "Notices cleared."
    if args and args[0].lower() == "dismiss":
        _need(args, 2, "/notices dismiss <id>")
        if not args[1].isdigit():
            raise UsageError("Notice id must be a number")
        return "Dismissed." if board.dismiss_notice(int(args[1])) else f"No notice #{args[1]}."

    if not board.notices:
        return "No notices."
    lines = ["Notices:"]
    for n in board.notices:
        tag = "ERROR" if n.level == NoticeLevel.ERROR else "info"
        hint = " (use /undo)" if n.undoable else ""
        lines.append(f"  #{n.id} [{tag}] {n.message}{hint}")
    return "\n".join(lines)


async def cmd_save(ctx: CommandContext, args: list[str]) -> str:
    await ctx.board.flush()
    return "All pending edits flushed."


registry.register("help", cmd_help, help_text="Show available commands.", aliases=["h", "?"])
registry.register("add", cmd_add, help_text="Create a task: /add <title> [#label] [!priority] [due:YYYY-MM-DD] [@who].")
registry.register("list", cmd_list, help_text="Show the board (filtered, sorted, grouped).", aliases=["ls"])
registry.register("move", cmd_move, help_text="Move a task: /move <task> <todo|doing|done>.", aliases=["mv"])
registry.register("rename", cmd_rename, help_text="Rename a task: /rename <task> <title>.")
registry.register("delete", cmd_delete, help_text="Delete a task: /delete <task>.", aliases=["rm"])
registry.register("edit", cmd_edit, help_text="Edit a field (autosaved): /edit <task> <field> <value>.")
registry.register("undo", cmd_undo, help_text="Undo the last change.", aliases=["u"])
registry.register("redo", cmd_redo, help_text="Redo the last undone change.")
registry.register("filter", cmd_filter, help_text="Filters: /filter [clear|q|label|assignee|due|priority] ...")
registry.register("sort", cmd_sort, help_text="Sort: /sort <created|due|priority> [asc|desc].")
registry.register("group", cmd_group, help_text="Group lanes: /group <none|assignee|priority|label>.")
registry.register("select", cmd_select, help_text="Toggle selection: /select <task...> | all | clear.", aliases=["sel"])
registry.register("bulk", cmd_bulk, help_text="Act on selection: /bulk move <status> | delete | label+ <n> | label- <n>.")
registry.register("sync", cmd_sync, help_text="Calendar sync: /sync <task> [on [calendar]|off|calendar <id>].")
registry.register("check", cmd_check, help_text="Checklist: /check <task> [add <text>|done <n>|edit <n> <text>|rm <n>|move <n> <pos>].")
registry.register("notices", cmd_notices, help_text="Show/dismiss notices: /notices [dismiss <id>|clear].")
registry.register("save", cmd_save, help_text="Flush pending autosave edits now.")

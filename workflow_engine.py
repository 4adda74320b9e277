"""
Workflow Command Engine: turns chat text into board updates.

``interpret(state, text)`` classifies one line of user text against an
ordered table of command patterns, applies the matching intent to the
board and returns the next state together with a reply. The input state
is never modified: changed workflows are rebuilt with ``model_copy`` and
untouched workflows and steps are carried over as the same objects.

Failures (unknown workflow, ambiguous name, nothing to run, unrecognized
text) are ordinary replies, never exceptions.
"""

from __future__ import annotations

import logging
import re
import secrets
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Iterable, Optional, Union

import flowbot_config
from workflow_models import (
    InterpretResult,
    Step,
    StepStatus,
    Workflow,
    WorkflowState,
    WorkflowStatus,
    utcnow,
)

logger = logging.getLogger(__name__)

# Same URL-safe alphabet and length as nanoid
ID_ALPHABET = "useandom-26T198340PX75pxJACKVERYMINDBUSHWOLF_GQZbfghjklqvwyzrict"
ID_LENGTH = 21

EXAMPLE_COMMANDS = [
    "list workflows",
    "create workflow Launch Campaign",
    "add step to Launch Campaign: Prepare email sequence",
    "run workflow Launch Campaign",
    "complete step 1 of Launch Campaign",
    "show workflow Launch Campaign",
    "tag Launch Campaign with marketing, q3",
    "assign Launch Campaign to Maya",
]

STATUS_WORDS: dict[str, StepStatus] = {
    "pending": "pending",
    "todo": "pending",
    "to do": "pending",
    "not started": "pending",
    "in progress": "in-progress",
    "in-progress": "in-progress",
    "started": "in-progress",
    "running": "in-progress",
    "active": "in-progress",
    "blocked": "blocked",
    "stuck": "blocked",
    "done": "done",
    "complete": "done",
    "completed": "done",
    "finished": "done",
}

_TRAILING_PUNCT = ".!?"
_OF_SPLIT = re.compile(r"\s+(?:of|in|on|for)\s+", re.IGNORECASE)
_TAG_SPLIT = re.compile(r"\s*(?:,|\band\b)\s*", re.IGNORECASE)


def new_id() -> str:
    """Random 21-character identifier."""
    return "".join(secrets.choice(ID_ALPHABET) for _ in range(ID_LENGTH))


def _normalize(value: str) -> str:
    return " ".join(value.split()).casefold()


def _clean(value: str) -> str:
    """Trim whitespace and a pair of surrounding quotes."""
    value = value.strip()
    if len(value) >= 2 and value[0] == value[-1] and value[0] in "\"'":
        value = value[1:-1].strip()
    return value


def _step_label(status: StepStatus) -> str:
    return status.replace("-", " ")


# --- Name resolution ---


@dataclass(frozen=True)
class Found:
    item: Union[Workflow, Step]


@dataclass(frozen=True)
class NotFound:
    query: str


@dataclass(frozen=True)
class Ambiguous:
    query: str
    candidates: tuple


Resolution = Union[Found, NotFound, Ambiguous]


def match_by_name(items: Iterable, query: str, key: Callable[[object], str]) -> Resolution:
    """
    Case-insensitive lookup: a single exact match wins, otherwise a single
    substring match. More than one candidate at either tier is ambiguous.
    """
    items = list(items)
    needle = _normalize(query)
    if not needle:
        return NotFound(query)

    exact = [item for item in items if _normalize(key(item)) == needle]
    if len(exact) == 1:
        return Found(exact[0])
    if exact:
        return Ambiguous(query, tuple(exact))

    partial = [item for item in items if needle in _normalize(key(item))]
    if len(partial) == 1:
        return Found(partial[0])
    if partial:
        return Ambiguous(query, tuple(partial))

    # "run workflow Launch Campaign." ends a sentence; retry without the period
    bare = query.rstrip(_TRAILING_PUNCT).strip()
    if bare and bare != query.strip():
        return match_by_name(items, bare, key)
    return NotFound(query)


def resolve_workflow(state: WorkflowState, query: str) -> Resolution:
    query = _clean(query)
    resolution = match_by_name(state.workflows, query, lambda wf: wf.name)
    # "add step to workflow X: ..." reads naturally too
    if isinstance(resolution, NotFound) and query.lower().startswith("workflow "):
        return match_by_name(state.workflows, query[len("workflow "):], lambda wf: wf.name)
    return resolution


def resolve_step(workflow: Workflow, ref: str) -> Resolution:
    """
    Resolve a step by 1-based position ("2", "#2", "step 2", "last") or
    by title using the same policy as workflow names.
    """
    ref = _clean(ref)
    ref = re.sub(r"^(?:step\s+|#)", "", ref, flags=re.IGNORECASE).strip()
    bare = ref.rstrip(_TRAILING_PUNCT).casefold()
    if bare.isdigit():
        position = int(bare)
        if 1 <= position <= len(workflow.steps):
            return Found(workflow.steps[position - 1])
        return NotFound(ref)
    if bare in ("last", "final") and workflow.steps:
        return Found(workflow.steps[-1])
    if bare == "first" and workflow.steps:
        return Found(workflow.steps[0])
    return match_by_name(workflow.steps, ref, lambda step: step.title)


# --- Status rules ---


def derive_status(steps: tuple[Step, ...]) -> WorkflowStatus:
    """completed iff every step is done; active once any step left pending."""
    if steps and all(step.status == "done" for step in steps):
        return "completed"
    if any(step.status != "pending" for step in steps):
        return "active"
    return "draft"


def parse_step_status(word: str) -> Optional[StepStatus]:
    return STATUS_WORDS.get(_normalize(_clean(word).rstrip(_TRAILING_PUNCT)))


# --- Turn context ---


@dataclass
class _Turn:
    state: WorkflowState
    now: datetime
    make_id: Callable[[], str]

    def reply(self, intent: str, text: str, highlighted: Optional[Workflow] = None) -> InterpretResult:
        """Answer without touching the board."""
        return InterpretResult(state=self.state, reply=text, intent=intent, highlighted=highlighted)

    def commit(self, intent: str, workflow: Workflow, text: str) -> InterpretResult:
        """Swap ``workflow`` into the board (or append it) and select it."""
        replaced = False
        workflows = []
        for wf in self.state.workflows:
            if wf.id == workflow.id:
                workflows.append(workflow)
                replaced = True
            else:
                workflows.append(wf)
        if not replaced:
            workflows.append(workflow)
        next_state = self.state.model_copy(
            update={"workflows": tuple(workflows), "selected_workflow_id": workflow.id}
        )
        return InterpretResult(state=next_state, reply=text, intent=intent, highlighted=workflow)

    def touch(self, workflow: Workflow, **changes) -> Workflow:
        """Copy ``workflow`` with changes, recomputing status and updated_at."""
        steps = changes.get("steps", workflow.steps)
        changes["status"] = derive_status(steps)
        changes["updated_at"] = self.now
        return workflow.model_copy(update=changes)

    def unresolved(self, resolution: Resolution, kind: str = "workflow",
                   highlighted: Optional[Workflow] = None) -> InterpretResult:
        if isinstance(resolution, Ambiguous):
            if kind == "workflow":
                names = ", ".join(f'"{wf.name}"' for wf in resolution.candidates)
            else:
                names = ", ".join(f'"{step.title}"' for step in resolution.candidates)
            return self.reply(
                "ambiguous",
                f'"{resolution.query}" matches more than one {kind}: {names}. Which one did you mean?',
                highlighted,
            )

        text = f'I couldn\'t find a {kind} matching "{resolution.query}".'
        if kind == "workflow" and self.state.workflows:
            names = ", ".join(f'"{wf.name}"' for wf in self.state.workflows)
            text += f" Known workflows: {names}."
        elif kind == "workflow":
            text += ' There are no workflows yet. Try "create workflow <name>".'
        elif highlighted is not None and highlighted.steps:
            text += f' "{highlighted.name}" has {len(highlighted.steps)} step(s); refer to them by number or title.'
        return self.reply("not_found", text, highlighted)

    def target_workflow(self, name: Optional[str]) -> Union[Workflow, InterpretResult]:
        """Resolve ``name``, or fall back to the selected workflow when omitted."""
        if name is None or not _clean(name):
            selected = self.state.selected
            if selected is None:
                return self.reply(
                    "incomplete",
                    'Which workflow? Name it in the command, e.g. "run workflow Launch Campaign".',
                )
            return selected
        resolution = resolve_workflow(self.state, name)
        if isinstance(resolution, Found):
            return resolution.item
        return self.unresolved(resolution)

    def target_step(self, rest: str) -> Union[tuple[Workflow, Step], InterpretResult]:
        """
        Resolve "<step> of <workflow>". Every " of " split is tried from the
        left; without a resolvable workflow the selected one is used.
        """
        first_failure = None
        for match in _OF_SPLIT.finditer(rest):
            step_ref, name = rest[:match.start()], rest[match.end():]
            resolution = resolve_workflow(self.state, name)
            if isinstance(resolution, Found):
                return self._pick_step(resolution.item, step_ref)
            if first_failure is None:
                first_failure = self.unresolved(resolution)

        selected = self.state.selected
        if selected is not None:
            picked = self._pick_step(selected, rest)
            if first_failure is None or not isinstance(picked, InterpretResult):
                return picked
        if first_failure is not None:
            return first_failure
        return self.reply(
            "incomplete",
            'Which workflow is that step in? Try "complete step 1 of Launch Campaign".',
        )

    def _pick_step(self, workflow: Workflow, ref: str) -> Union[tuple[Workflow, Step], InterpretResult]:
        resolution = resolve_step(workflow, ref)
        if isinstance(resolution, Found):
            return workflow, resolution.item
        return self.unresolved(resolution, kind="step", highlighted=workflow)


# --- Command table ---


@dataclass(frozen=True)
class Command:
    intent: str
    pattern: re.Pattern
    handler: Callable[[_Turn, re.Match], InterpretResult]


COMMANDS: list[Command] = []


def command(intent: str, *patterns: str):
    """
    Register ``handler`` for each pattern, in declaration order.

    Trailing sentence punctuation is allowed after every pattern. A final
    capture group keeps it, so titles and descriptions are stored as typed.
    """
    def register(handler):
        for pattern in patterns:
            compiled = re.compile(f"(?:{pattern})[{re.escape(_TRAILING_PUNCT)}]*", re.IGNORECASE)
            COMMANDS.append(Command(intent, compiled, handler))
        return handler
    return register


def normalize_text(text: str) -> str:
    """Collapse runs of whitespace."""
    return " ".join(str(text or "").split())


def match_command(text: str) -> Optional[tuple[Command, re.Match]]:
    """First command whose pattern matches the whole (normalized) text."""
    normalized = normalize_text(text)
    for cmd in COMMANDS:
        m = cmd.pattern.fullmatch(normalized)
        if m:
            return cmd, m
    return None


def help_text(intro: str = "Here's what I can do:") -> str:
    lines = [intro]
    lines.extend(f"- {example}" for example in EXAMPLE_COMMANDS)
    return "\n".join(lines)


@command("help", r"help", r"what can you do", r"commands")
def _help(turn: _Turn, m: re.Match) -> InterpretResult:
    return turn.reply("help", help_text())


@command("list", r"(?:list|show)(?: all| my)?(?: workflows?| board)?", r"workflows")
def _list(turn: _Turn, m: re.Match) -> InterpretResult:
    if not turn.state.workflows:
        return turn.reply(
            "list",
            'You don\'t have any workflows yet. Try "create workflow Launch Campaign".',
        )
    lines = [f"You have {len(turn.state.workflows)} workflow(s):"]
    for index, wf in enumerate(turn.state.workflows, start=1):
        if wf.steps:
            counts = f"{wf.done_count}/{len(wf.steps)} steps done"
        else:
            counts = "no steps"
        lines.append(f"{index}. {wf.name}: {wf.status}, {counts}")
    return turn.reply("list", "\n".join(lines))


@command(
    "create",
    r"(?:create|new|add|make)(?: a)?(?: new)? workflow(?: called| named)? (?P<name>.+)",
)
def _create(turn: _Turn, m: re.Match) -> InterpretResult:
    name = _clean(m.group("name"))
    if not name:
        return turn.reply("incomplete", 'What should the workflow be called? Try "create workflow Launch Campaign".')
    workflow = Workflow(
        id=turn.make_id(),
        name=name,
        description="Created from chat.",
        owner=flowbot_config.DEFAULT_OWNER,
        status="draft",
        created_at=turn.now,
        updated_at=turn.now,
    )
    return turn.commit(
        "create",
        workflow,
        f'Created workflow "{name}". Add steps with "add step to {name}: <step title>".',
    )


def _add_step(turn: _Turn, name: Optional[str], title: str) -> InterpretResult:
    title = _clean(title)
    target = turn.target_workflow(name)
    if isinstance(target, InterpretResult):
        return target
    if not title:
        return turn.reply(
            "incomplete",
            f'What should the new step be called? Try "add step to {target.name}: <step title>".',
            target,
        )
    step = Step(id=turn.make_id(), title=title, status="pending")
    updated = turn.touch(target, steps=target.steps + (step,))
    return turn.commit(
        "add_step",
        updated,
        f'Added step {len(updated.steps)} "{title}" to "{updated.name}".',
    )


@command(
    "add_step",
    r"add (?:a |another )?(?:new )?step to (?P<name>[^:]+?)\s*:\s*(?P<title>.*)",
    r"add (?:a |another )?(?:new )?step\s*:\s*(?P<title>.*)",
    r"add (?:a |another )?(?:new )?step (?P<title>.+) to (?P<name>.+)",
)
def _add_step_command(turn: _Turn, m: re.Match) -> InterpretResult:
    return _add_step(turn, m.groupdict().get("name"), m.group("title"))


@command("add_step", r"add (?:a |another )?(?:new )?step(?: to (?P<name>.+))?")
def _add_step_missing_title(turn: _Turn, m: re.Match) -> InterpretResult:
    return _add_step(turn, m.group("name"), "")


def _set_step_status(turn: _Turn, rest: str, status: StepStatus) -> InterpretResult:
    target = turn.target_step(rest)
    if isinstance(target, InterpretResult):
        return target
    workflow, step = target
    if step.status == status:
        return turn.reply(
            "no_change",
            f'"{step.title}" in "{workflow.name}" is already {_step_label(status)}.',
            workflow,
        )
    steps = tuple(
        s.model_copy(update={"status": status}) if s.id == step.id else s
        for s in workflow.steps
    )
    updated = turn.touch(workflow, steps=steps)
    text = f'Marked "{step.title}" in "{workflow.name}" as {_step_label(status)}.'
    if updated.status == "completed":
        text += f' Every step is done, so "{workflow.name}" is now completed.'
    elif workflow.status == "completed":
        text += f' "{workflow.name}" is back to {updated.status}.'
    return turn.commit("status_change", updated, text)


@command("status_change", r"mark (?:step )?(?P<rest>.+) as (?P<status>[a-z -]+)")
def _mark_step(turn: _Turn, m: re.Match) -> InterpretResult:
    status = parse_step_status(m.group("status"))
    if status is None:
        return turn.reply(
            "incomplete",
            f'I don\'t know the status "{m.group("status")}". Use pending, in progress, blocked or done.',
        )
    return _set_step_status(turn, m.group("rest"), status)


@command("status_change", r"(?:complete|finish|close) step (?P<rest>.+)")
def _complete_step(turn: _Turn, m: re.Match) -> InterpretResult:
    return _set_step_status(turn, m.group("rest"), "done")


@command("status_change", r"(?:start|begin) (?P<full>step (?P<rest>.+))")
def _start_step(turn: _Turn, m: re.Match) -> InterpretResult:
    # "start Step Functions Migration" names a workflow, not a step
    if isinstance(turn.target_step(m.group("rest")), InterpretResult):
        if isinstance(resolve_workflow(turn.state, m.group("full")), Found):
            return _run_workflow(turn, m.group("full"))
    return _set_step_status(turn, m.group("rest"), "in-progress")


@command("status_change", r"block step (?P<rest>.+)")
def _block_step(turn: _Turn, m: re.Match) -> InterpretResult:
    return _set_step_status(turn, m.group("rest"), "blocked")


@command("status_change", r"(?:reset|reopen|unblock) step (?P<rest>.+)")
def _reset_step(turn: _Turn, m: re.Match) -> InterpretResult:
    return _set_step_status(turn, m.group("rest"), "pending")


@command("assign_step", r"assign step (?P<rest>.+) to (?P<owner>.+?)")
def _assign_step(turn: _Turn, m: re.Match) -> InterpretResult:
    owner = _clean(m.group("owner"))
    target = turn.target_step(m.group("rest"))
    if isinstance(target, InterpretResult):
        return target
    workflow, step = target
    if step.owner == owner:
        return turn.reply("no_change", f'"{step.title}" is already assigned to {owner}.', workflow)
    steps = tuple(
        s.model_copy(update={"owner": owner}) if s.id == step.id else s
        for s in workflow.steps
    )
    updated = turn.touch(workflow, steps=steps)
    return turn.commit("assign_step", updated, f'Assigned "{step.title}" in "{workflow.name}" to {owner}.')


@command(
    "assign",
    r"assign (?:workflow )?(?P<name>.+) to (?P<owner>.+?)",
    r"set (?:the )?owner (?:of|for) (?P<name>.+) to (?P<owner>.+?)",
)
def _assign(turn: _Turn, m: re.Match) -> InterpretResult:
    owner = _clean(m.group("owner"))
    target = turn.target_workflow(m.group("name"))
    if isinstance(target, InterpretResult):
        return target
    if target.owner == owner:
        return turn.reply("no_change", f'"{target.name}" is already owned by {owner}.', target)
    updated = turn.touch(target, owner=owner)
    return turn.commit("assign", updated, f'"{target.name}" is now owned by {owner}.')


def _parse_tags(raw: str) -> list[str]:
    tags = []
    for part in _TAG_SPLIT.split(raw):
        tag = _clean(part).rstrip(_TRAILING_PUNCT).lstrip("#").strip().lower()
        if tag and tag not in tags:
            tags.append(tag)
    return tags


@command("tag", r"tag (?:workflow )?(?P<name>.+?) (?:with|as) (?P<tags>.+)")
def _tag(turn: _Turn, m: re.Match) -> InterpretResult:
    target = turn.target_workflow(m.group("name"))
    if isinstance(target, InterpretResult):
        return target
    tags = _parse_tags(m.group("tags"))
    if not tags:
        return turn.reply("incomplete", f'Which tags? Try "tag {target.name} with marketing".', target)
    merged = target.tags | frozenset(tags)
    if merged == target.tags:
        return turn.reply("no_change", f'"{target.name}" already has those tags.', target)
    updated = turn.touch(target, tags=merged)
    return turn.commit(
        "tag",
        updated,
        f'Tagged "{target.name}" with {", ".join(tags)}. Tags: {", ".join(sorted(merged))}.',
    )


@command(
    "untag",
    r"remove (?:the )?tag (?P<tag>.+?) from (?:workflow )?(?P<name>.+)",
    r"untag (?:workflow )?(?P<name>.+) (?P<tag>\S+)",
)
def _untag(turn: _Turn, m: re.Match) -> InterpretResult:
    target = turn.target_workflow(m.group("name"))
    if isinstance(target, InterpretResult):
        return target
    tag = _clean(m.group("tag")).rstrip(_TRAILING_PUNCT).lstrip("#").lower()
    if tag not in target.tags:
        return turn.reply("no_change", f'"{target.name}" isn\'t tagged "{tag}".', target)
    updated = turn.touch(target, tags=target.tags - {tag})
    return turn.commit("untag", updated, f'Removed tag "{tag}" from "{target.name}".')


@command(
    "describe",
    r"describe (?:workflow )?(?P<name>.+?) as (?P<text>.+)",
    r"set (?:the )?description (?:of|for) (?P<name>.+?) to (?P<text>.+)",
)
def _describe(turn: _Turn, m: re.Match) -> InterpretResult:
    target = turn.target_workflow(m.group("name"))
    if isinstance(target, InterpretResult):
        return target
    description = _clean(m.group("text"))
    updated = turn.touch(target, description=description)
    return turn.commit("describe", updated, f'Updated the description of "{target.name}".')


@command(
    "show",
    r"(?:show|describe|details(?: for| of)?|status(?: of)?)(?: workflow)? (?P<name>.+)",
)
def _show(turn: _Turn, m: re.Match) -> InterpretResult:
    target = turn.target_workflow(m.group("name"))
    if isinstance(target, InterpretResult):
        return target
    lines = [f"{target.name} ({target.status}, {target.progress}% done)", f"Owner: {target.owner}"]
    if target.description:
        lines.append(target.description)
    if target.tags:
        lines.append(f"Tags: {', '.join(sorted(target.tags))}")
    if not target.steps:
        lines.append("No steps yet.")
    for index, step in enumerate(target.steps, start=1):
        owner = f" ({step.owner})" if step.owner else ""
        lines.append(f"{index}. [{_step_label(step.status)}] {step.title}{owner}")
    return turn.reply("show", "\n".join(lines), target)


@command(
    "run",
    r"(?:run|start|execute|kick off)(?: the)?(?: workflow)?(?: (?P<name>.+))?",
)
def _run(turn: _Turn, m: re.Match) -> InterpretResult:
    return _run_workflow(turn, m.group("name"))


def _run_workflow(turn: _Turn, name: Optional[str]) -> InterpretResult:
    target = turn.target_workflow(name)
    if isinstance(target, InterpretResult):
        return target
    if not target.steps:
        return turn.reply(
            "nothing_to_run",
            f'"{target.name}" has no steps to run yet. Add one with "add step to {target.name}: <step title>".',
            target,
        )
    step = next((s for s in target.steps if s.status != "done"), None)
    if step is None:
        return turn.reply(
            "nothing_to_run",
            f'"{target.name}" is already complete: all {len(target.steps)} steps are done.',
            target,
        )
    if step.status == "in-progress":
        return turn.reply(
            "no_change",
            f'"{step.title}" is already in progress in "{target.name}".',
            target,
        )
    steps = tuple(
        s.model_copy(update={"status": "in-progress"}) if s.id == step.id else s
        for s in target.steps
    )
    updated = turn.touch(target, steps=steps)
    return turn.commit(
        "run",
        updated,
        f'Running "{target.name}": "{step.title}" is now in progress.',
    )


# --- Entry point ---


def interpret(
    state: WorkflowState,
    text: str,
    *,
    now: Optional[datetime] = None,
    id_factory: Optional[Callable[[], str]] = None,
) -> InterpretResult:
    """
    Apply one line of user text to ``state``.

    Returns an InterpretResult with the next state (the same object when
    nothing changed), the reply, the classified intent and the workflow
    to highlight, if any. Never raises for any input text.
    """
    turn = _Turn(state=state, now=now or utcnow(), make_id=id_factory or new_id)

    found = match_command(text)
    if found is None:
        logger.debug(f"Unrecognized command: {text!r}")
        return turn.reply("unknown", help_text("I didn't understand that. Try one of these:"))

    cmd, m = found
    try:
        result = cmd.handler(turn, m)
    except Exception as e:
        logger.exception(f"Command {cmd.intent} failed for {text!r}: {e}")
        return turn.reply("error", "Something went wrong with that command. The board was left unchanged.")

    logger.debug(f"{cmd.intent}: {text!r} -> {result.intent}")
    return result

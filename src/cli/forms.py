"""Forms CLI commands."""

from __future__ import annotations

import json
from pathlib import Path
from typing import List, Optional

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from src.db.database import get_db
from src.db.models import User
from src.core.forms.adapters import ADAPTERS, get_adapter
from src.core.forms.engine import FormRuleEngine
from src.core.forms.models import (
    ActionKind,
    AnswerMap,
    DefinitionError,
    FieldType,
    FormDefinition,
    FormEvaluation,
    Operator,
)
from src.core.forms.repository import get_or_create_default_user
from src.core.forms.service import (
    DuplicateSubmissionError,
    FormNotFoundError,
    FormService,
    FormValidationError,
    SubmissionRejectedError,
    SubmissionsClosedError,
)
from src.core.forms.validation import validate_definition

console = Console()
app = typer.Typer()


def _read_json(path: Path):
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError:
        console.print(f"[red]Error:[/red] File not found: {path}")
        raise typer.Exit(1)
    except json.JSONDecodeError as e:
        console.print(f"[red]Error:[/red] {path} is not valid JSON: {e}")
        raise typer.Exit(1)


def _load_definition(path: Path, source: Optional[str]) -> FormDefinition:
    """Load a definition file, decoding a legacy payload when a source is given."""
    payload = _read_json(path)
    if source:
        adapter = get_adapter(source)
        if adapter is None:
            console.print(f"[red]Error:[/red] Unknown source: {source}")
            console.print(f"Valid sources: {', '.join(ADAPTERS)}")
            raise typer.Exit(1)
        if not isinstance(payload, dict):
            console.print(f"[red]Error:[/red] {path} must contain a JSON object")
            raise typer.Exit(1)
        try:
            return adapter(payload)
        except ValueError as e:
            console.print(f"[red]Error:[/red] Could not decode {source} form:\n{escape(str(e))}")
            raise typer.Exit(1)
    try:
        return FormDefinition.model_validate(payload)
    except ValueError as e:
        console.print(f"[red]Error:[/red] {path} is not a form definition:\n{escape(str(e))}")
        raise typer.Exit(1)


def _load_answers(answers: Optional[str], answers_file: Optional[Path]) -> AnswerMap:
    if answers_file is not None:
        data = _read_json(answers_file)
    elif answers:
        try:
            data = json.loads(answers)
        except json.JSONDecodeError as e:
            console.print(f"[red]Error:[/red] --answers is not valid JSON: {e}")
            raise typer.Exit(1)
    else:
        data = {}
    if not isinstance(data, dict):
        console.print("[red]Error:[/red] Answers must be a JSON object of field id -> value")
        raise typer.Exit(1)
    return data


def _print_errors(errors: List[DefinitionError]) -> None:
    table = Table(title="Definition Errors")
    table.add_column("Element", style="cyan")
    table.add_column("Code", style="red")
    table.add_column("Message")
    for e in errors:
        table.add_row(e.element_id or "[dim]form[/dim]", e.code, e.message)
    console.print(table)


def _print_evaluation(form: FormDefinition, evaluation: FormEvaluation) -> None:
    table = Table(title=form.title)
    table.add_column("Section", style="dim")
    table.add_column("Field", style="cyan")
    table.add_column("Type")
    table.add_column("Visible")
    table.add_column("Required")
    table.add_column("Value")

    for section in form.sections:
        for field in section.fields:
            state = evaluation.fields[field.id]
            value = evaluation.answers.get(field.id)
            table.add_row(
                section.title,
                field.id,
                field.type.value,
                "[green]Yes[/green]" if state.visible else "[dim]No[/dim]",
                "[yellow]Yes[/yellow]" if state.required else "[dim]No[/dim]",
                "[dim]-[/dim]" if value is None else json.dumps(value),
            )

    console.print(table)
    if evaluation.jump_to_section_id:
        console.print(f"[bold]Jump to section:[/bold] {evaluation.jump_to_section_id}")
    if not evaluation.converged:
        console.print(
            f"[yellow]Warning:[/yellow] calculations did not settle after {evaluation.passes} passes"
        )


def _resolve_user(db, email: Optional[str]) -> User:
    if not email:
        return get_or_create_default_user(db)
    email = email.strip().lower()
    user = db.query(User).filter_by(email=email).first()
    if not user:
        user = User(email=email)
        db.add(user)
        db.flush()
    return user


@app.command("validate")
def validate_form(
    path: Path = typer.Argument(..., help="Form definition JSON file"),
    source: Optional[str] = typer.Option(
        None, "--source", "-s", help=f"Legacy payload source: {', '.join(ADAPTERS)}"
    ),
):
    """Validate a form definition without saving it."""
    definition = _load_definition(path, source)
    errors = validate_definition(definition)
    if not errors:
        console.print(
            f"[green]Valid:[/green] {definition.title} "
            f"({len(definition.sections)} section(s), {definition.field_count} field(s))"
        )
        return
    _print_errors(errors)
    raise typer.Exit(1)


@app.command("evaluate")
def evaluate_form(
    path: Path = typer.Argument(..., help="Form definition JSON file"),
    answers: Optional[str] = typer.Option(None, "--answers", "-a", help="Answers as a JSON object"),
    answers_file: Optional[Path] = typer.Option(None, "--answers-file", "-f", help="Answers JSON file"),
    changed: Optional[str] = typer.Option(
        None, "--changed", "-c", help="Field the respondent just edited (default: full evaluation)"
    ),
    source: Optional[str] = typer.Option(None, "--source", "-s", help="Legacy payload source"),
    as_json: bool = typer.Option(False, "--json", help="Print the raw evaluation as JSON"),
):
    """Evaluate a form's rules against a set of answers."""
    definition = _load_definition(path, source)
    evaluation = FormRuleEngine().evaluate(
        definition,
        _load_answers(answers, answers_file),
        changed_field_id=changed,
    )
    if as_json:
        console.print_json(evaluation.model_dump_json())
        return
    _print_evaluation(definition, evaluation)


@app.command("import")
def import_form(
    source: str = typer.Argument(..., help=f"Legacy source: {', '.join(ADAPTERS)}"),
    path: Path = typer.Argument(..., help="Legacy payload JSON file"),
    out: Optional[Path] = typer.Option(None, "--out", "-o", help="Write the decoded definition here"),
):
    """Decode a legacy builder payload into the unified form model."""
    definition = _load_definition(path, source)
    errors = validate_definition(definition)

    text = definition.model_dump_json(indent=2)
    if out:
        out.write_text(text + "\n", encoding="utf-8")
        console.print(f"[green]Wrote:[/green] {out}")
    else:
        console.print_json(text)

    if errors:
        _print_errors(errors)
        console.print("[yellow]Fix the errors above before saving this form.[/yellow]")


@app.command("save")
def save_form(
    path: Path = typer.Argument(..., help="Form definition JSON file"),
    form_id: Optional[str] = typer.Option(None, "--form-id", "-i", help="Replace an existing form"),
    source: Optional[str] = typer.Option(None, "--source", "-s", help="Legacy payload source"),
    owner: Optional[str] = typer.Option(None, "--owner", help="Owner email (default user if omitted)"),
):
    """Validate and store a form."""
    definition = _load_definition(path, source)

    with get_db() as db:
        service = FormService(db)
        user = _resolve_user(db, owner)
        try:
            form = service.save_form(definition, owner_id=user.id, form_id=form_id)
        except FormValidationError as e:
            _print_errors(e.errors)
            raise typer.Exit(1)
        except FormNotFoundError:
            console.print(f"[red]Error:[/red] Form '{form_id}' not found.")
            raise typer.Exit(1)

        verb = "Updated" if form_id else "Saved"
        console.print(
            f"[green]{verb} form:[/green] {form.title}\n"
            f"  ID: [cyan]{form.id}[/cyan]\n"
            f"  Fields: {definition.field_count}\n"
            f"  Rules: {len(list(definition.iter_rules()))}"
        )


@app.command("list")
def list_forms(
    owner: Optional[str] = typer.Option(None, "--owner", help="Owner email (default user if omitted)"),
):
    """List stored forms."""
    with get_db() as db:
        service = FormService(db)
        user = _resolve_user(db, owner)
        forms = service.forms.get_all(owner_id=user.id)

        if not forms:
            console.print("[yellow]No forms found.[/yellow] Use 'save' to store one.")
            return

        table = Table(title="Forms")
        table.add_column("ID", style="cyan")
        table.add_column("Title")
        table.add_column("Fields", justify="right")
        table.add_column("Submissions", justify="right")
        table.add_column("Open")
        table.add_column("Updated")

        for f in forms:
            definition = service.forms.to_definition(f)
            table.add_row(
                f.id,
                f.title,
                str(definition.field_count),
                str(service.submissions.count_for_form(f.id)),
                "[green]Yes[/green]" if f.allow_submissions else "[red]No[/red]",
                f.updated_at.strftime("%Y-%m-%d %H:%M"),
            )

        console.print(table)
        console.print(f"\n[dim]Total forms: {len(forms)}[/dim]")


@app.command("show")
def show_form(
    form_id: str = typer.Argument(..., help="Form ID"),
):
    """Print a stored form definition as JSON."""
    with get_db() as db:
        service = FormService(db)
        try:
            definition = service.load_form(form_id)
        except FormNotFoundError:
            console.print(f"[red]Error:[/red] Form '{form_id}' not found.")
            raise typer.Exit(1)
        console.print_json(definition.model_dump_json())


@app.command("delete")
def delete_form(
    form_id: str = typer.Argument(..., help="Form ID"),
    force: bool = typer.Option(False, "--force", "-f", help="Skip confirmation"),
):
    """Delete a form and all of its submissions."""
    with get_db() as db:
        service = FormService(db)
        form = service.forms.get_by_id(form_id)
        if not form:
            console.print(f"[red]Error:[/red] Form '{form_id}' not found.")
            raise typer.Exit(1)

        if not force:
            confirm = typer.confirm(f"Delete form '{form.title}' and its submissions?")
            if not confirm:
                console.print("[yellow]Cancelled.[/yellow]")
                raise typer.Exit(0)

        service.forms.delete(form_id)
        console.print(f"[green]Deleted:[/green] {form.title}")


@app.command("submit")
def submit_form(
    form_id: str = typer.Argument(..., help="Form ID"),
    answers: Optional[str] = typer.Option(None, "--answers", "-a", help="Answers as a JSON object"),
    answers_file: Optional[Path] = typer.Option(None, "--answers-file", "-f", help="Answers JSON file"),
    respondent: Optional[str] = typer.Option(
        None, "--as", help="Respondent email (anonymous if omitted)"
    ),
):
    """Submit answers to a stored form."""
    answer_map = _load_answers(answers, answers_file)

    with get_db() as db:
        service = FormService(db)
        respondent_id = _resolve_user(db, respondent).id if respondent else None
        try:
            submission = service.submit(form_id, answer_map, respondent_id=respondent_id)
        except FormNotFoundError:
            console.print(f"[red]Error:[/red] Form '{form_id}' not found.")
            raise typer.Exit(1)
        except (SubmissionsClosedError, DuplicateSubmissionError) as e:
            console.print(f"[red]Error:[/red] {e}")
            raise typer.Exit(1)
        except SubmissionRejectedError as e:
            console.print(f"[red]Rejected:[/red] {e}")
            for v in e.violations:
                console.print(f"  [cyan]{v.field_id}[/cyan]: {v.reason}")
            raise typer.Exit(1)

        console.print(
            f"[green]Submitted:[/green] {submission.id}\n"
            f"  Answers stored: {len(submission.values)}"
        )


@app.command("types")
def list_types():
    """List field types, operators and actions."""
    console.print("[bold]Field Types[/bold]\n")
    for ft in FieldType:
        marker = " [dim](needs options)[/dim]" if ft.is_choice else ""
        console.print(f"[cyan]{ft.value}[/cyan]{marker}")
        console.print(f"  {ft.description()}")

    console.print("\n[bold]Operators[/bold]\n")
    console.print("  " + ", ".join(op.value for op in Operator))

    console.print("\n[bold]Actions[/bold]\n")
    for kind in ActionKind:
        console.print(f"[cyan]{kind.value}[/cyan]")
        console.print(f"  {kind.description()}")

"""Forms API routes."""

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Request, status
from slowapi import Limiter
from slowapi.util import get_remote_address

from src.api.deps import get_current_user, get_form_service, get_respondent, require_api_key
from src.config import get_settings
from src.core.forms.adapters import ADAPTERS, get_adapter
from src.core.forms.models import (
    DefinitionError,
    EvaluateRequest,
    FormCreate,
    FormDefinition,
    FormEvaluation,
    FormResponse,
    FormSummary,
    ImportResult,
    SubmissionCreate,
    SubmissionResponse,
)
from src.core.forms.repository import SubmissionRepository
from src.core.forms.service import (
    DuplicateSubmissionError,
    FormNotFoundError,
    FormService,
    FormValidationError,
    SubmissionRejectedError,
    SubmissionsClosedError,
)
from src.core.forms.validation import validate_definition
from src.db.models import Form, Submission, User

router = APIRouter(dependencies=[Depends(require_api_key)])
settings = get_settings()

# Rate limiter for respondent submissions
limiter = Limiter(key_func=get_remote_address)


def _form_response(service: FormService, form: Form) -> FormResponse:
    definition = service.forms.to_definition(form)
    return FormResponse(
        id=form.id,
        owner_id=form.owner_id,
        owner_kind=form.owner_kind,
        owner_ref=form.owner_ref,
        created_at=form.created_at,
        updated_at=form.updated_at,
        **definition.model_dump(),
    )


def _submission_response(submission: Submission) -> SubmissionResponse:
    return SubmissionResponse(
        id=submission.id,
        form_id=submission.form_id,
        respondent_id=submission.respondent_id,
        submitted_at=submission.submitted_at,
        answers=SubmissionRepository.to_answers(submission),
    )


def _get_owned_form(service: FormService, form_id: str, user: User) -> Form:
    """Fetch a form, hiding other owners' forms behind a 404."""
    try:
        form = service.get_form(form_id)
    except FormNotFoundError:
        form = None
    if form is None or form.owner_id != user.id:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Form {form_id} not found",
        )
    return form


def _validation_failed(exc: FormValidationError) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        detail={
            "message": "Form definition is not valid",
            "errors": [e.model_dump() for e in exc.errors],
        },
    )


@router.get("/", response_model=List[FormSummary])
def list_forms(
    service: FormService = Depends(get_form_service),
    user: User = Depends(get_current_user),
):
    """List forms owned by the current user."""
    summaries = []
    for form in service.forms.get_all(owner_id=user.id):
        definition = service.forms.to_definition(form)
        summaries.append(
            FormSummary(
                id=form.id,
                title=form.title,
                allow_submissions=form.allow_submissions,
                field_count=definition.field_count,
                submission_count=service.submissions.count_for_form(form.id),
                updated_at=form.updated_at,
            )
        )
    return summaries


@router.post("/", response_model=FormResponse, status_code=status.HTTP_201_CREATED)
def create_form(
    payload: FormCreate,
    service: FormService = Depends(get_form_service),
    user: User = Depends(get_current_user),
):
    """Create a new form."""
    definition = FormDefinition(**payload.model_dump(exclude={"owner_kind", "owner_ref"}))
    try:
        form = service.save_form(
            definition,
            owner_id=user.id,
            owner_kind=payload.owner_kind,
            owner_ref=payload.owner_ref,
        )
    except FormValidationError as exc:
        raise _validation_failed(exc)
    return _form_response(service, form)


@router.post("/validate", response_model=List[DefinitionError])
def validate_form(payload: FormDefinition):
    """Validate a definition without saving it."""
    return validate_definition(payload)


@router.post("/import/{source}", response_model=ImportResult)
def import_form(source: str, payload: Dict[str, Any]):
    """Decode a legacy builder payload into the unified form model."""
    adapter = get_adapter(source)
    if adapter is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Unknown import source '{source}'. Valid sources: {', '.join(ADAPTERS)}",
        )
    try:
        definition = adapter(payload)
    except ValueError as exc:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail={"message": f"Could not decode {source} form", "error": str(exc)},
        )
    return ImportResult(source=source, form=definition, errors=validate_definition(definition))


@router.get("/{form_id}", response_model=FormResponse)
def get_form(
    form_id: str,
    service: FormService = Depends(get_form_service),
):
    """Get a form definition. Respondents need this, so ownership is not checked."""
    try:
        form = service.get_form(form_id)
    except FormNotFoundError:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Form {form_id} not found",
        )
    return _form_response(service, form)


@router.put("/{form_id}", response_model=FormResponse)
def replace_form(
    form_id: str,
    payload: FormDefinition,
    service: FormService = Depends(get_form_service),
    user: User = Depends(get_current_user),
):
    """Replace a form's sections, fields and rules."""
    _get_owned_form(service, form_id, user)
    try:
        form = service.save_form(payload, owner_id=user.id, form_id=form_id)
    except FormValidationError as exc:
        raise _validation_failed(exc)
    return _form_response(service, form)


@router.delete("/{form_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_form(
    form_id: str,
    service: FormService = Depends(get_form_service),
    user: User = Depends(get_current_user),
):
    """Delete a form and its submissions."""
    _get_owned_form(service, form_id, user)
    service.forms.delete(form_id)


@router.post("/{form_id}/open", response_model=FormResponse)
def open_form(
    form_id: str,
    service: FormService = Depends(get_form_service),
    user: User = Depends(get_current_user),
):
    """Start accepting submissions."""
    _get_owned_form(service, form_id, user)
    return _form_response(service, service.forms.set_allow_submissions(form_id, True))


@router.post("/{form_id}/close", response_model=FormResponse)
def close_form(
    form_id: str,
    service: FormService = Depends(get_form_service),
    user: User = Depends(get_current_user),
):
    """Stop accepting submissions."""
    _get_owned_form(service, form_id, user)
    return _form_response(service, service.forms.set_allow_submissions(form_id, False))


@router.post("/{form_id}/evaluate", response_model=FormEvaluation)
def evaluate_form(
    form_id: str,
    payload: EvaluateRequest,
    service: FormService = Depends(get_form_service),
):
    """Evaluate rules against live answers after a field edit."""
    try:
        return service.evaluate(form_id, payload.answers, payload.changed_field_id)
    except FormNotFoundError:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Form {form_id} not found",
        )


@router.post(
    "/{form_id}/submissions",
    response_model=SubmissionResponse,
    status_code=status.HTTP_201_CREATED,
)
@limiter.limit(settings.submission_rate_limit)
def submit_form(
    request: Request,
    form_id: str,
    payload: SubmissionCreate,
    service: FormService = Depends(get_form_service),
    respondent: Optional[User] = Depends(get_respondent),
):
    """Submit answers. Rules are recomputed server-side before accepting.

    Requests without an X-User-Email header are stored anonymously.
    """
    respondent_id = respondent.id if respondent else None
    try:
        submission = service.submit(form_id, payload.answers, respondent_id=respondent_id)
    except FormNotFoundError:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Form {form_id} not found",
        )
    except (SubmissionsClosedError, DuplicateSubmissionError) as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))
    except SubmissionRejectedError as exc:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail={
                "message": str(exc),
                "violations": [v.model_dump() for v in exc.violations],
            },
        )
    return _submission_response(submission)


@router.get("/{form_id}/submissions", response_model=List[SubmissionResponse])
def list_submissions(
    form_id: str,
    service: FormService = Depends(get_form_service),
    user: User = Depends(get_current_user),
):
    """List submissions to a form (owner only)."""
    _get_owned_form(service, form_id, user)
    return [_submission_response(s) for s in service.submissions.get_for_form(form_id)]

from fastapi import APIRouter, Depends, status, Request
from typing import List, Optional
import logging

from ..core.auth import require_api_token
from ..core.errors import NotFoundError, ValidationFailedError
from ..core.incident_store import IncidentStore, get_incident_store
from ..core.uploads import StoredUpload, UploadPolicy, get_upload_policy, read_submission
from ..models.incidents import (
    DeleteIncidentResponse,
    Incident,
    IncidentPayload,
    validate_incident_payload,
)

router = APIRouter(tags=["incidents"])
logger = logging.getLogger(__name__)

ERROR_RESPONSES = {
    400: {"description": "Validation or upload error"},
    401: {"description": "Missing or invalid bearer token"},
    413: {"description": "Payload or file too large"},
    429: {"description": "Rate limit exceeded"},
}


async def _validated_submission(
    request: Request, upload_policy: UploadPolicy
) -> tuple[IncidentPayload, Optional[StoredUpload]]:
    """
    Run the upload stage then schema validation for a create/update body.

    A file stored by the upload stage is removed again when the fields fail
    validation.
    """
    async with read_submission(request, upload_policy) as submission:
        stored = None
        if submission.image is not None:
            stored = await upload_policy.save(submission.image)

        try:
            payload = validate_incident_payload(submission.fields)
        except ValidationFailedError as e:
            logger.info(f"Incident validation failed: {e.details}")
            if stored is not None:
                upload_policy.discard(stored)
            raise

    return payload, stored


@router.get(
    "/incidents",
    response_model=List[Incident],
    response_model_exclude_none=True,
)
def list_incidents(store: IncidentStore = Depends(get_incident_store)):
    """
    List all incidents, most recently created first.
    """
    incidents = store.get_all()
    logger.info(f"Retrieved all incidents, count={len(incidents)}")
    return incidents


@router.post(
    "/incidents",
    status_code=status.HTTP_201_CREATED,
    response_model=Incident,
    response_model_exclude_none=True,
    responses=ERROR_RESPONSES,
    dependencies=[Depends(require_api_token)],
)
async def create_incident(
    request: Request,
    store: IncidentStore = Depends(get_incident_store),
    upload_policy: UploadPolicy = Depends(get_upload_policy),
):
    """
    Create an incident from a multipart form, urlencoded form or JSON body.

    An optional ``image`` file is stored and exposed under the uploads path.
    """
    payload, stored = await _validated_submission(request, upload_policy)

    fields = payload.model_dump(mode="json", exclude_unset=True)
    if stored is not None:
        fields["image"] = upload_policy.public_path(stored)

    incident = await store.create(fields)
    logger.info(
        f"Created new incident id={incident.id} type={incident.incident_type}"
    )
    return incident


@router.put(
    "/incidents/{incident_id}",
    response_model=Incident,
    response_model_exclude_none=True,
    responses={**ERROR_RESPONSES, 404: {"description": "Incident not found"}},
    dependencies=[Depends(require_api_token)],
)
async def update_incident(
    incident_id: str,
    request: Request,
    store: IncidentStore = Depends(get_incident_store),
    upload_policy: UploadPolicy = Depends(get_upload_policy),
):
    """
    Replace an incident's fields. The stored image is kept unless a new one is sent.
    """
    payload, stored = await _validated_submission(request, upload_policy)

    fields = payload.model_dump(mode="json", exclude_unset=True)
    if stored is not None:
        fields["image"] = upload_policy.public_path(stored)

    incident = await store.update(incident_id, fields)
    if incident is None:
        if stored is not None:
            upload_policy.discard(stored)
        raise NotFoundError()

    logger.info(
        f"Updated incident id={incident_id} type={incident.incident_type}"
    )
    return incident


@router.delete(
    "/incidents/{incident_id}",
    response_model=DeleteIncidentResponse,
    responses={
        401: ERROR_RESPONSES[401],
        404: {"description": "Incident not found"},
        429: ERROR_RESPONSES[429],
    },
    dependencies=[Depends(require_api_token)],
)
async def delete_incident(
    incident_id: str,
    store: IncidentStore = Depends(get_incident_store),
):
    """
    Delete an incident by ID.
    """
    deleted = await store.delete(incident_id)
    if not deleted:
        raise NotFoundError()

    logger.info(f"Deleted incident id={incident_id}")
    return DeleteIncidentResponse(message="Incident deleted successfully")

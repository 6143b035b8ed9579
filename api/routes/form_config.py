"""
Form Configuration API Routes.
"""

import logging
from typing import Any, Dict

from fastapi import APIRouter, Body, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from database.repositories import FormConfigRepository
from database.session import get_db
from lead_scoring.form_config import FormConfigError, normalize_config

from ..middleware.auth import require_admin
from ..services import load_form_config

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/form-config")
async def get_form_config(db: AsyncSession = Depends(get_db)) -> Dict[str, Any]:
    """Current questionnaire, sorted, with thresholds and computed maxScore."""
    config = await load_form_config(db)
    return config.to_public_dict()


@router.put("/form-config", dependencies=[Depends(require_admin)])
async def update_form_config(
    payload: Dict[str, Any] = Body(...),
    db: AsyncSession = Depends(get_db),
) -> Dict[str, Any]:
    """
    Replace the questionnaire.

    ``maxScore`` is recomputed server-side; a client-supplied value is ignored.
    Existing leads are not touched.
    """
    try:
        config = normalize_config(payload)
    except FormConfigError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"code": "invalid_form_config", "message": str(e)},
        )

    data = config.to_public_dict()
    await FormConfigRepository(db).save(data)
    logger.info(f"Form config updated: {len(config.questions)} questions, maxScore={config.max_score}")
    return data

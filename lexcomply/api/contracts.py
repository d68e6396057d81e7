"""
Contract drafting.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.auth import AuthenticatedUser
from ..core.dependencies import get_audit_context, get_db, get_user
from ..core.schemas import CamelModel
from ..models.analysis import AnalysisType
from ..repositories import analyses as analyses_repo
from ..services import analysis, audit
from ..services.audit import AuditActions, AuditContext

logger = logging.getLogger(__name__)

contracts_router = APIRouter(tags=["contracts"])


class ContractRequest(CamelModel):
    contract_type: str = ""
    requirements: str = ""
    jurisdiction: str = "Germany"


class ContractResponse(CamelModel):
    contract: str


@contracts_router.post("/contracts/generate", response_model=ContractResponse)
async def generate_contract(
    request: ContractRequest,
    user: AuthenticatedUser = Depends(get_user),
    db: AsyncSession = Depends(get_db),
    context: AuditContext = Depends(get_audit_context),
):
    if not request.contract_type.strip() or not request.requirements.strip():
        raise HTTPException(
            status_code=400, detail="Contract type and requirements are required"
        )

    contract, tokens = await analysis.generate_contract(
        request.contract_type, request.requirements, request.jurisdiction
    )

    await analyses_repo.create_ai_analysis(
        db,
        user_id=user.user_id,
        analysis_type=AnalysisType.CONTRACT_GENERATION,
        prompt=f"Generate {request.contract_type} contract ({request.jurisdiction})",
        response=contract,
        metadata={
            "contractType": request.contract_type,
            "jurisdiction": request.jurisdiction,
        },
        tokens_used=tokens,
    )
    await db.commit()

    await audit.log_ai_action(
        AuditActions.CONTRACT_GENERATE,
        context,
        {"contractType": request.contract_type, "jurisdiction": request.jurisdiction},
    )
    logger.info("Generated %s contract for user %s", request.contract_type, user.user_id)
    return ContractResponse(contract=contract)

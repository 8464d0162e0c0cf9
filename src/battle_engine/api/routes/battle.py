"""Battle preparation endpoints."""

from fastapi import APIRouter
from pydantic import BaseModel, Field

from battle_engine.api.deps import BattleServiceDep
from battle_engine.logging import get_logger

router = APIRouter(prefix="/battle", tags=["Battle"])
logger = get_logger(__name__)


class PrepareBattleRequest(BaseModel):
    """Request to prepare the still images for a battle."""

    player1_image: str = Field(..., min_length=1)
    player2_image: str = Field(..., min_length=1)


class StanceResponse(BaseModel):
    player: str
    url: str
    type: str


class PrepareBattleResponse(BaseModel):
    stances: list[StanceResponse]
    versus_screen: str | None
    battle_arena: str | None
    processing_time_ms: int


class TransformRequest(BaseModel):
    """Request to reimagine one photo as character variants."""

    image_url: str = Field(..., min_length=1)
    prompt: str | None = Field(None, max_length=5000)
    output_file_name: str | None = Field(None, max_length=100)
    num_images: int = Field(default=3, ge=1, le=4)


class TransformResponse(BaseModel):
    image_urls: list[str]
    prompt: str


@router.post(
    "/prepare",
    response_model=PrepareBattleResponse,
    summary="Prepare battle",
    description="Generate both fighting stances, the versus screen and the arena concurrently.",
)
async def prepare_battle(
    request: PrepareBattleRequest, service: BattleServiceDep
) -> PrepareBattleResponse:
    preparation = await service.prepare(request.player1_image, request.player2_image)
    return PrepareBattleResponse(**preparation.to_dict())


@router.post(
    "/transform",
    response_model=TransformResponse,
    summary="Transform photo",
)
async def transform_image(request: TransformRequest, service: BattleServiceDep) -> TransformResponse:
    result = await service.transform(
        request.image_url,
        prompt=request.prompt,
        output_file_name=request.output_file_name,
        num_images=request.num_images,
    )
    return TransformResponse(image_urls=result.image_urls, prompt=result.prompt)

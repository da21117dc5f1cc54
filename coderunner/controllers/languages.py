from fastapi import APIRouter

from coderunner.dependencies import Registry
from coderunner.models.execution import LanguagesResponse

router = APIRouter()


@router.get("/languages", response_model=LanguagesResponse)
async def list_languages(registry: Registry) -> LanguagesResponse:
    return LanguagesResponse(languages=registry.languages())

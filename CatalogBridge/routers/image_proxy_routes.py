import logging

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import Response

from CatalogBridge.exceptions import ImageFetchError, InvalidImageTokenError, UnsafeImageUrlError
from CatalogBridge.services.catalog.image_proxy_service import ImageProxyService

logger = logging.getLogger(__name__)
router = APIRouter()


def get_image_proxy_service(request: Request) -> ImageProxyService:
    return request.app.state.image_proxy_service


@router.get("/proxy/{token}")
async def proxy_image(token: str, request: Request, service: ImageProxyService = Depends(get_image_proxy_service)):
    """
    Serve a supplier image behind an opaque token.

    Clients that accept image/webp get a WebP rendition when conversion succeeds.
    """
    try:
        image = await service.fetch(token, request.headers.get("accept"))
    except UnsafeImageUrlError:
        raise HTTPException(status_code=400, detail="Invalid image URL")
    except (InvalidImageTokenError, ImageFetchError) as e:
        logger.info(f"Image proxy miss: {e.message}")
        raise HTTPException(status_code=404, detail="Image not found")

    return Response(
        content=image.content,
        media_type=image.content_type,
        headers={"Cache-Control": f"public, max-age={service.cache_ttl_seconds}"},
    )

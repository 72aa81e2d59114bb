from __future__ import annotations

from datetime import timedelta
import logging
from pathlib import Path
from typing import Any

from fastapi import Depends, FastAPI, File, Form, HTTPException, Query, UploadFile, status
from fastapi.responses import ORJSONResponse
from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from landingkit.config import settings
from landingkit.content_assistant import (
    ContentAssistant,
    ContentAssistantError,
    ContentErrorKind,
    GenerationOptions,
    ProductBrief,
)
from landingkit.credentials import SqlCredentialStore
from landingkit.db import SessionLocal, get_session, init_db
from landingkit.metafields import build_metafield_inputs, group_by_namespace, merge_with_legacy_fields
from landingkit.models import ProductRecord, Storefront
from landingkit.schemas import (
    AssistFieldRequest,
    AssistFieldResponse,
    AttachMediaRequest,
    AttachMediaResponse,
    CreateProductRequest,
    CreateProductResponse,
    CreateShopRequest,
    CreateVariantsRequest,
    DeleteMediaResponse,
    DeleteProductRequest,
    DeleteProductResponse,
    DeleteVariantResponse,
    GenerateContentRequest,
    GenerateContentResponse,
    ListProductsResponse,
    ListShopsResponse,
    MediaItem,
    MetafieldDefinitionModel,
    MetafieldDefinitionsResponse,
    ProductContentRequest,
    ProductContentResponse,
    ProductDetailResponse,
    ProductSummary,
    ProductVariantsResponse,
    ShopResponse,
    SyncTemplatesRequest,
    SyncTemplatesResponse,
    TemplateFileResult,
    TitleSuggestionsRequest,
    TitleSuggestionsResponse,
    UpdateProductRequest,
    UpdateProductResponse,
    UpdateVariantsRequest,
    UploadMediaResponse,
    VariantModel,
    VariantOptionModel,
    VariantPreviewRequest,
    VariantPreviewResponse,
    VariantsMutationResponse,
)
from landingkit.security import normalize_shop_domain, require_internal_api_token
from landingkit.shopify_api import ShopifyApiClient, ShopifyApiError
from landingkit.token_refresher import ShopifyTokenIssuer, TokenRefresher
from landingkit.variants import (
    VariantCombination,
    VariantOption,
    VariantValidationResult,
    generate_combinations_with_defaults,
    merge_combinations,
    validate_options,
)

logger = logging.getLogger(__name__)

app = FastAPI(title="Landingkit Shopify Admin", default_response_class=ORJSONResponse)
credential_store = SqlCredentialStore(SessionLocal)
token_refresher = TokenRefresher(
    store=credential_store,
    issuer=ShopifyTokenIssuer(timeout=settings.SHOPIFY_REQUEST_TIMEOUT_SECONDS),
    refresh_buffer=timedelta(seconds=settings.SHOPIFY_TOKEN_REFRESH_BUFFER_SECONDS),
)
shopify_api = ShopifyApiClient(store=credential_store, refresher=token_refresher)
content_assistant = ContentAssistant()

_CONTENT_ERROR_STATUS = {
    ContentErrorKind.SAFETY_BLOCKED: status.HTTP_400_BAD_REQUEST,
    ContentErrorKind.MALFORMED_OUTPUT: status.HTTP_400_BAD_REQUEST,
    ContentErrorKind.QUOTA_EXCEEDED: status.HTTP_429_TOO_MANY_REQUESTS,
    ContentErrorKind.NOT_CONFIGURED: status.HTTP_503_SERVICE_UNAVAILABLE,
    ContentErrorKind.GENERATION_FAILED: status.HTTP_502_BAD_GATEWAY,
}


@app.on_event("startup")
def startup() -> None:
    init_db()


@app.get("/health")
def health() -> dict[str, bool]:
    return {"ok": True}


def _serialize_shop(storefront: Storefront) -> ShopResponse:
    return ShopResponse(
        id=str(storefront.id),
        name=storefront.name,
        shopDomain=storefront.shop_domain,
        canRefreshToken=bool(storefront.client_id and storefront.client_secret),
        expiresAt=storefront.expires_at,
        createdAt=storefront.created_at,
        updatedAt=storefront.updated_at,
    )


def _content_error_to_http(exc: ContentAssistantError) -> HTTPException:
    detail: dict[str, Any] = {"code": exc.kind.value, "message": str(exc)}
    if exc.raw_text:
        detail["rawText"] = exc.raw_text
    return HTTPException(status_code=_CONTENT_ERROR_STATUS[exc.kind], detail=detail)


def _variant_validation_error(result: VariantValidationResult) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_400_BAD_REQUEST,
        detail={
            "code": result.error.value if result.error else None,
            "message": result.message,
            "optionName": result.option_name,
        },
    )


def _validated_options(models: list[VariantOptionModel]) -> list[VariantOption]:
    options = [model.to_option() for model in models]
    result = validate_options(options)
    if not result.valid:
        raise _variant_validation_error(result)
    return options


def _storefront_pk(storefront_id: str) -> int:
    try:
        return int(storefront_id)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Storefront not found") from exc


# -- shops -----------------------------------------------------------------


@app.get("/shops", response_model=ListShopsResponse, dependencies=[Depends(require_internal_api_token)])
def list_shops(session: Session = Depends(get_session)):
    storefronts = session.scalars(select(Storefront).order_by(Storefront.created_at.desc())).all()
    return ListShopsResponse(shops=[_serialize_shop(item) for item in storefronts])


@app.post("/shops", response_model=ShopResponse, dependencies=[Depends(require_internal_api_token)])
async def create_shop(payload: CreateShopRequest, session: Session = Depends(get_session)):
    shop_domain = normalize_shop_domain(payload.shopDomain)
    try:
        await shopify_api.fetch_shop_info(shop_domain=shop_domain, access_token=payload.accessToken)
    except ShopifyApiError as exc:
        raise HTTPException(status_code=exc.status_code, detail=str(exc)) from exc

    storefront = session.scalars(select(Storefront).where(Storefront.shop_domain == shop_domain)).first()
    if storefront is None:
        storefront = Storefront(name=payload.name, shop_domain=shop_domain, access_token=payload.accessToken)
        session.add(storefront)
    storefront.name = payload.name
    storefront.access_token = payload.accessToken
    storefront.expires_at = payload.expiresAt
    if payload.clientId and payload.clientSecret:
        storefront.client_id = payload.clientId
        storefront.client_secret = payload.clientSecret
    session.commit()
    session.refresh(storefront)
    logger.info("Storefront saved", extra={"storefrontId": storefront.id, "shopDomain": shop_domain})
    return _serialize_shop(storefront)


@app.delete("/shops/{storefront_id}", dependencies=[Depends(require_internal_api_token)])
def delete_shop(storefront_id: str, session: Session = Depends(get_session)) -> dict[str, bool]:
    storefront = session.get(Storefront, _storefront_pk(storefront_id))
    if storefront is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Storefront not found")
    session.execute(delete(ProductRecord).where(ProductRecord.storefront_id == storefront.id))
    session.delete(storefront)
    session.commit()
    return {"ok": True}


# -- products --------------------------------------------------------------


@app.get("/products", response_model=ListProductsResponse, dependencies=[Depends(require_internal_api_token)])
async def list_products(
    storefrontId: str,
    query: str | None = None,
    limit: int = Query(default=20, ge=1, le=100),
):
    try:
        products = await shopify_api.list_products(storefrontId, query=query, limit=limit)
    except ShopifyApiError as exc:
        raise HTTPException(status_code=exc.status_code, detail=str(exc)) from exc
    return ListProductsResponse(
        storefrontId=storefrontId,
        products=[ProductSummary(**item) for item in products],
    )


@app.get(
    "/products/{product_gid:path}",
    response_model=ProductDetailResponse,
    dependencies=[Depends(require_internal_api_token)],
)
async def get_product(product_gid: str, storefrontId: str):
    try:
        product = await shopify_api.get_product(storefrontId, product_gid)
    except ShopifyApiError as exc:
        raise HTTPException(status_code=exc.status_code, detail=str(exc)) from exc
    return ProductDetailResponse(
        storefrontId=storefrontId,
        id=product["id"],
        title=product["title"],
        handle=product.get("handle"),
        status=product.get("status"),
        descriptionHtml=product.get("descriptionHtml"),
        vendor=product.get("vendor"),
        productType=product.get("productType"),
        templateSuffix=product.get("templateSuffix"),
        options=[VariantOptionModel.from_option(item) for item in product["options"]],
        variants=[VariantModel.from_combination(item) for item in product["variants"]],
        media=[MediaItem(**item) for item in product["media"]],
        metafields=product["metafields"],
    )


def _planned_combinations(payload: CreateProductRequest, options: list[VariantOption]) -> list[VariantCombination]:
    if not options:
        return []
    regenerated = generate_combinations_with_defaults(
        options,
        default_price=payload.price or "0.00",
        default_compare_at_price=payload.compareAtPrice,
    )
    return merge_combinations([item.to_combination() for item in payload.variants], regenerated)


def _record_product(
    session: Session,
    *,
    payload: CreateProductRequest,
    product_gid: str,
    variants_count: int,
) -> None:
    storefront_pk = _storefront_pk(payload.storefrontId)
    record = session.scalars(
        select(ProductRecord).where(
            ProductRecord.storefront_id == storefront_pk,
            ProductRecord.shopify_product_id == product_gid,
        )
    ).first()
    if record is None:
        record = ProductRecord(storefront_id=storefront_pk, shopify_product_id=product_gid, title=payload.title)
        session.add(record)
    record.title = payload.title
    record.price = payload.price
    record.sku = payload.sku
    record.template_suffix = payload.templateSuffix
    record.metafields = dict(payload.metafields)
    record.variants_count = max(variants_count, 1)
    record.has_multiple_variants = variants_count > 1
    session.commit()


@app.post("/products", response_model=CreateProductResponse, dependencies=[Depends(require_internal_api_token)])
async def create_product(payload: CreateProductRequest, session: Session = Depends(get_session)):
    options = _validated_options(payload.options) if payload.options else []
    combinations = _planned_combinations(payload, options)
    storefront_id = payload.storefrontId

    try:
        created = await shopify_api.create_product(
            storefront_id,
            title=payload.title,
            description_html=payload.descriptionHtml,
            template_suffix=payload.templateSuffix,
            status=payload.status,
        )
    except ShopifyApiError as exc:
        raise HTTPException(status_code=exc.status_code, detail=str(exc)) from exc

    product_gid = created["productGid"]
    response = CreateProductResponse(
        storefrontId=storefront_id,
        productGid=product_gid,
        title=created["title"],
        handle=created.get("handle"),
        status=created["status"],
    )

    # The product exists from here on, so later failures are reported rather than raised.
    if payload.publish:
        try:
            published = await shopify_api.publish_product(storefront_id, product_gid)
        except ShopifyApiError as exc:
            response.warnings.append(f"publish: {exc}")
        else:
            response.publishedTo = published.published
            response.warnings.extend(f"publish to {item['channel']}: {item['error']}" for item in published.failed)

    if combinations:
        try:
            location_id = await shopify_api.get_primary_location_id(storefront_id)
            created_variants = await shopify_api.create_variants(
                storefront_id,
                product_gid,
                combinations,
                location_id=location_id,
            )
        except ShopifyApiError as exc:
            response.warnings.append(f"variants: {exc}")
        else:
            response.variantsCreated = len(created_variants)
    elif (payload.price or payload.compareAtPrice or payload.sku) and created.get("defaultVariantId"):
        default_variant = VariantCombination(
            id=created["defaultVariantId"],
            options={},
            price=payload.price or "0.00",
            compare_at_price=payload.compareAtPrice,
            sku=payload.sku,
        )
        try:
            await shopify_api.update_variants(storefront_id, product_gid, [default_variant])
        except ShopifyApiError as exc:
            response.warnings.append(f"price: {exc}")

    metafield_inputs = build_metafield_inputs(product_gid, payload.metafields)
    if metafield_inputs:
        try:
            response.metafieldsSet = await shopify_api.set_metafields(storefront_id, metafield_inputs)
        except ShopifyApiError as exc:
            response.warnings.append(f"metafields: {exc}")

    if payload.images:
        try:
            attached = await shopify_api.attach_product_media(
                storefront_id,
                product_gid,
                [item.model_dump() for item in payload.images],
            )
        except ShopifyApiError as exc:
            response.warnings.append(f"media: {exc}")
        else:
            response.mediaAttached = len(attached)

    _record_product(session, payload=payload, product_gid=product_gid, variants_count=len(combinations))
    if response.warnings:
        logger.warning(
            "Product created with partial failures",
            extra={"storefrontId": storefront_id, "productGid": product_gid, "warnings": response.warnings},
        )
    return response


@app.patch("/products", response_model=UpdateProductResponse, dependencies=[Depends(require_internal_api_token)])
async def update_product(payload: UpdateProductRequest, session: Session = Depends(get_session)):
    try:
        if payload.title or payload.descriptionHtml is not None:
            await shopify_api.update_product(
                payload.storefrontId,
                payload.productGid,
                title=payload.title,
                description_html=payload.descriptionHtml,
            )
        metafields_set = await shopify_api.set_metafields(
            payload.storefrontId,
            build_metafield_inputs(payload.productGid, payload.metafields),
        )
    except ShopifyApiError as exc:
        raise HTTPException(status_code=exc.status_code, detail=str(exc)) from exc

    record = session.scalars(
        select(ProductRecord).where(ProductRecord.shopify_product_id == payload.productGid)
    ).first()
    if record is not None:
        if payload.title:
            record.title = payload.title
        if payload.metafields:
            record.metafields = {**(record.metafields or {}), **payload.metafields}
        session.commit()

    return UpdateProductResponse(
        storefrontId=payload.storefrontId,
        productGid=payload.productGid,
        metafieldsSet=metafields_set,
    )


@app.post(
    "/products/delete",
    response_model=DeleteProductResponse,
    dependencies=[Depends(require_internal_api_token)],
)
async def delete_product(payload: DeleteProductRequest, session: Session = Depends(get_session)):
    try:
        if payload.action == "unpublish":
            await shopify_api.unpublish_product(payload.storefrontId, payload.productGid)
        else:
            await shopify_api.delete_product(payload.storefrontId, payload.productGid)
    except ShopifyApiError as exc:
        raise HTTPException(status_code=exc.status_code, detail=str(exc)) from exc

    if payload.action == "delete":
        record = session.scalars(
            select(ProductRecord).where(ProductRecord.shopify_product_id == payload.productGid)
        ).first()
        if record is not None:
            session.delete(record)
            session.commit()

    return DeleteProductResponse(
        storefrontId=payload.storefrontId,
        productGid=payload.productGid,
        action=payload.action,
    )


# -- variants --------------------------------------------------------------


@app.post(
    "/variants/preview",
    response_model=VariantPreviewResponse,
    dependencies=[Depends(require_internal_api_token)],
)
def preview_variants(payload: VariantPreviewRequest):
    options = _validated_options(payload.options)
    regenerated = generate_combinations_with_defaults(
        options,
        default_price=payload.defaultPrice,
        default_compare_at_price=payload.defaultCompareAtPrice,
    )
    merged = merge_combinations([item.to_combination() for item in payload.existing], regenerated)
    return VariantPreviewResponse(
        count=len(merged),
        variants=[VariantModel.from_combination(item) for item in merged],
    )


@app.get("/variants", response_model=ProductVariantsResponse, dependencies=[Depends(require_internal_api_token)])
async def get_variants(storefrontId: str, productGid: str):
    try:
        options, variants = await shopify_api.get_product_variants(storefrontId, productGid)
    except ShopifyApiError as exc:
        raise HTTPException(status_code=exc.status_code, detail=str(exc)) from exc
    return ProductVariantsResponse(
        storefrontId=storefrontId,
        productGid=productGid,
        options=[VariantOptionModel.from_option(item) for item in options],
        variants=[VariantModel.from_combination(item) for item in variants],
    )


@app.post("/variants", response_model=VariantsMutationResponse, dependencies=[Depends(require_internal_api_token)])
async def create_variants(payload: CreateVariantsRequest):
    options = _validated_options(payload.options)
    regenerated = generate_combinations_with_defaults(options, default_price=payload.defaultPrice)
    combinations = merge_combinations([item.to_combination() for item in payload.variants], regenerated)
    try:
        location_id = await shopify_api.get_primary_location_id(payload.storefrontId)
        created = await shopify_api.create_variants(
            payload.storefrontId,
            payload.productGid,
            combinations,
            location_id=location_id,
        )
    except ShopifyApiError as exc:
        raise HTTPException(status_code=exc.status_code, detail=str(exc)) from exc
    return VariantsMutationResponse(
        storefrontId=payload.storefrontId,
        productGid=payload.productGid,
        variantIds=[item["id"] for item in created if item.get("id")],
    )


@app.put("/variants", response_model=VariantsMutationResponse, dependencies=[Depends(require_internal_api_token)])
async def update_variants(payload: UpdateVariantsRequest):
    try:
        updated = await shopify_api.update_variants(
            payload.storefrontId,
            payload.productGid,
            [item.to_combination() for item in payload.variants],
        )
    except ShopifyApiError as exc:
        raise HTTPException(status_code=exc.status_code, detail=str(exc)) from exc
    return VariantsMutationResponse(
        storefrontId=payload.storefrontId,
        productGid=payload.productGid,
        variantIds=[item["id"] for item in updated if item.get("id")],
    )


@app.delete("/variants", response_model=DeleteVariantResponse, dependencies=[Depends(require_internal_api_token)])
async def delete_variant(storefrontId: str, productGid: str, variantGid: str):
    try:
        deleted = await shopify_api.delete_variant(storefrontId, productGid, variantGid)
    except ShopifyApiError as exc:
        raise HTTPException(status_code=exc.status_code, detail=str(exc)) from exc
    return DeleteVariantResponse(storefrontId=storefrontId, productGid=productGid, deletedVariantId=deleted)


# -- media -----------------------------------------------------------------


@app.post("/media/upload", response_model=UploadMediaResponse, dependencies=[Depends(require_internal_api_token)])
async def upload_media(storefrontId: str = Form(...), file: UploadFile = File(...)):
    content = await file.read()
    if not content:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Uploaded file is empty")
    try:
        uploaded = await shopify_api.upload_image(
            storefrontId,
            filename=file.filename or "upload.jpg",
            mime_type=file.content_type or "image/jpeg",
            content=content,
        )
    except ShopifyApiError as exc:
        raise HTTPException(status_code=exc.status_code, detail=str(exc)) from exc
    return UploadMediaResponse(id=uploaded.id, url=uploaded.url)


@app.post(
    "/products/media",
    response_model=AttachMediaResponse,
    dependencies=[Depends(require_internal_api_token)],
)
async def attach_media(payload: AttachMediaRequest):
    try:
        media = await shopify_api.attach_product_media(
            payload.storefrontId,
            payload.productGid,
            [item.model_dump() for item in payload.media],
        )
    except ShopifyApiError as exc:
        raise HTTPException(status_code=exc.status_code, detail=str(exc)) from exc
    return AttachMediaResponse(
        productGid=payload.productGid,
        media=[
            MediaItem(
                id=item["id"],
                url=(item.get("image") or {}).get("url") or "",
                altText=(item.get("image") or {}).get("altText"),
            )
            for item in media
            if item.get("id")
        ],
    )


@app.delete(
    "/products/media",
    response_model=DeleteMediaResponse,
    dependencies=[Depends(require_internal_api_token)],
)
async def delete_media(storefrontId: str, productGid: str, mediaIds: list[str] = Query(...)):
    try:
        deleted = await shopify_api.delete_product_media(storefrontId, productGid, mediaIds)
    except ShopifyApiError as exc:
        raise HTTPException(status_code=exc.status_code, detail=str(exc)) from exc
    return DeleteMediaResponse(productGid=productGid, deletedMediaIds=deleted)


# -- metafields and theme --------------------------------------------------


@app.get(
    "/metafield-definitions",
    response_model=MetafieldDefinitionsResponse,
    dependencies=[Depends(require_internal_api_token)],
)
async def list_metafield_definitions(storefrontId: str, ownerType: str = "PRODUCT"):
    try:
        shop_definitions = await shopify_api.list_metafield_definitions(storefrontId, owner_type=ownerType)
    except ShopifyApiError as exc:
        raise HTTPException(status_code=exc.status_code, detail=str(exc)) from exc
    merged = merge_with_legacy_fields(shop_definitions)
    return MetafieldDefinitionsResponse(
        definitions=[MetafieldDefinitionModel(**item) for item in merged],
        byNamespace={
            namespace: [MetafieldDefinitionModel(**item) for item in items]
            for namespace, items in group_by_namespace(merged).items()
        },
    )


def load_template_files(templates_dir: Path) -> list[dict[str, str]]:
    if not templates_dir.is_dir():
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Templates directory not found: {templates_dir}",
        )
    files = []
    for path in sorted(templates_dir.rglob("*")):
        if path.is_file():
            files.append(
                {
                    "key": path.relative_to(templates_dir).as_posix(),
                    "content": path.read_text(encoding="utf-8"),
                }
            )
    return files


@app.post(
    "/templates/sync",
    response_model=SyncTemplatesResponse,
    dependencies=[Depends(require_internal_api_token)],
)
async def sync_templates(payload: SyncTemplatesRequest):
    files = load_template_files(settings.LANDINGKIT_TEMPLATES_DIR)
    try:
        result = await shopify_api.sync_theme_templates(payload.storefrontId, files)
    except ShopifyApiError as exc:
        raise HTTPException(status_code=exc.status_code, detail=str(exc)) from exc
    return SyncTemplatesResponse(
        themeId=result.theme_id,
        success=result.success,
        results=[TemplateFileResult(**item) for item in result.results],
    )


# -- AI --------------------------------------------------------------------


@app.post("/ai/generate", response_model=GenerateContentResponse, dependencies=[Depends(require_internal_api_token)])
def generate_content(payload: GenerateContentRequest):
    options = GenerationOptions(
        tone=payload.tone,
        include_reviews=payload.includeReviews,
        target_audience=payload.targetAudience,
    )
    try:
        content = content_assistant.generate_landing_page_content(payload.prompt, options)
    except ContentAssistantError as exc:
        raise _content_error_to_http(exc) from exc
    return GenerateContentResponse(content=content)


@app.post(
    "/ai/assist-field",
    response_model=AssistFieldResponse,
    dependencies=[Depends(require_internal_api_token)],
)
def assist_field(payload: AssistFieldRequest):
    try:
        value = content_assistant.assist_field(
            payload.fieldName,
            payload.fieldLabel,
            payload.productContext,
            payload.currentValue,
            payload.action,
        )
    except ContentAssistantError as exc:
        raise _content_error_to_http(exc) from exc
    return AssistFieldResponse(fieldName=payload.fieldName, value=value)


@app.post("/ai/titles", response_model=TitleSuggestionsResponse, dependencies=[Depends(require_internal_api_token)])
def title_suggestions(payload: TitleSuggestionsRequest):
    try:
        titles = content_assistant.generate_title_suggestions(payload.description, payload.count)
    except ContentAssistantError as exc:
        raise _content_error_to_http(exc) from exc
    return TitleSuggestionsResponse(titles=titles)


@app.post(
    "/ai/product-content",
    response_model=ProductContentResponse,
    dependencies=[Depends(require_internal_api_token)],
)
def product_content(payload: ProductContentRequest):
    brief = ProductBrief(
        name=payload.name,
        category=payload.category,
        description=payload.description,
        target_audience=payload.targetAudience,
        style=payload.style,
    )
    try:
        content = content_assistant.generate_product_content(brief)
    except ContentAssistantError as exc:
        raise _content_error_to_http(exc) from exc
    return ProductContentResponse(content=content)

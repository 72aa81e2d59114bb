from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator, model_validator

from landingkit.variants import VariantCombination, VariantOption, format_combination_label, unique_values


class CreateShopRequest(BaseModel):
    name: str = Field(min_length=1)
    shopDomain: str = Field(min_length=1)
    accessToken: str = Field(min_length=1)
    clientId: str | None = None
    clientSecret: str | None = None
    expiresAt: datetime | None = None

    @field_validator("expiresAt")
    @classmethod
    def assume_utc_when_naive(cls, value: datetime | None) -> datetime | None:
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    @model_validator(mode="after")
    def validate_client_credentials(self) -> "CreateShopRequest":
        if bool(self.clientId) != bool(self.clientSecret):
            raise ValueError("clientId and clientSecret must be provided together")
        return self


class ShopResponse(BaseModel):
    id: str
    name: str
    shopDomain: str
    canRefreshToken: bool
    expiresAt: datetime | None = None
    createdAt: datetime
    updatedAt: datetime


class ListShopsResponse(BaseModel):
    shops: list[ShopResponse]


class ProductSummary(BaseModel):
    id: str
    title: str
    handle: str | None = None
    status: str | None = None
    templateSuffix: str | None = None
    imageUrl: str | None = None
    price: str | None = None
    sku: str | None = None


class ListProductsResponse(BaseModel):
    storefrontId: str
    products: list[ProductSummary]


class VariantOptionModel(BaseModel):
    name: str
    values: list[str] = Field(default_factory=list)

    def to_option(self) -> VariantOption:
        values = unique_values(value.strip() for value in self.values if value.strip())
        return VariantOption(name=self.name.strip(), values=values)

    @classmethod
    def from_option(cls, option: VariantOption) -> "VariantOptionModel":
        return cls(name=option.name, values=list(option.values))


class VariantModel(BaseModel):
    id: str | None = None
    options: dict[str, str] = Field(default_factory=dict)
    price: str = "0.00"
    compareAtPrice: str | None = None
    sku: str | None = None
    inventoryQuantity: int | None = None
    imageId: str | None = None
    imageUrl: str | None = None
    label: str | None = None

    def to_combination(self) -> VariantCombination:
        return VariantCombination(
            id=self.id,
            options=dict(self.options),
            price=self.price,
            compare_at_price=self.compareAtPrice,
            sku=self.sku,
            inventory_quantity=self.inventoryQuantity,
            image_id=self.imageId,
            image_url=self.imageUrl,
        )

    @classmethod
    def from_combination(cls, combination: VariantCombination) -> "VariantModel":
        return cls(
            id=combination.id,
            options=dict(combination.options),
            price=combination.price,
            compareAtPrice=combination.compare_at_price,
            sku=combination.sku,
            inventoryQuantity=combination.inventory_quantity,
            imageId=combination.image_id,
            imageUrl=combination.image_url,
            label=format_combination_label(combination.options),
        )


class MediaItem(BaseModel):
    id: str
    url: str
    altText: str | None = None


class ProductDetailResponse(BaseModel):
    storefrontId: str
    id: str
    title: str
    handle: str | None = None
    status: str | None = None
    descriptionHtml: str | None = None
    vendor: str | None = None
    productType: str | None = None
    templateSuffix: str | None = None
    options: list[VariantOptionModel]
    variants: list[VariantModel]
    media: list[MediaItem]
    metafields: dict[str, dict[str, Any]]


class MediaInput(BaseModel):
    url: str = Field(min_length=1)
    altText: str | None = None


class CreateProductRequest(BaseModel):
    storefrontId: str = Field(min_length=1)
    title: str = Field(min_length=1)
    descriptionHtml: str | None = None
    price: str | None = None
    compareAtPrice: str | None = None
    sku: str | None = None
    templateSuffix: str | None = "landing"
    status: Literal["ACTIVE", "DRAFT", "ARCHIVED"] = "ACTIVE"
    publish: bool = True
    options: list[VariantOptionModel] = Field(default_factory=list)
    variants: list[VariantModel] = Field(default_factory=list)
    images: list[MediaInput] = Field(default_factory=list)
    metafields: dict[str, Any] = Field(default_factory=dict)


class CreateProductResponse(BaseModel):
    storefrontId: str
    productGid: str
    title: str
    handle: str | None = None
    status: str
    publishedTo: list[str] = Field(default_factory=list)
    variantsCreated: int = 0
    metafieldsSet: int = 0
    mediaAttached: int = 0
    warnings: list[str] = Field(default_factory=list)


class UpdateProductRequest(BaseModel):
    storefrontId: str = Field(min_length=1)
    productGid: str = Field(min_length=1)
    title: str | None = None
    descriptionHtml: str | None = None
    metafields: dict[str, Any] = Field(default_factory=dict)


class UpdateProductResponse(BaseModel):
    storefrontId: str
    productGid: str
    metafieldsSet: int = 0


class DeleteProductRequest(BaseModel):
    storefrontId: str = Field(min_length=1)
    productGid: str = Field(min_length=1)
    action: Literal["delete", "unpublish"] = "delete"


class DeleteProductResponse(BaseModel):
    storefrontId: str
    productGid: str
    action: Literal["delete", "unpublish"]


class VariantPreviewRequest(BaseModel):
    options: list[VariantOptionModel]
    existing: list[VariantModel] = Field(default_factory=list)
    defaultPrice: str = "0.00"
    defaultCompareAtPrice: str | None = None


class VariantPreviewResponse(BaseModel):
    count: int
    variants: list[VariantModel]


class ProductVariantsResponse(BaseModel):
    storefrontId: str
    productGid: str
    options: list[VariantOptionModel]
    variants: list[VariantModel]


class CreateVariantsRequest(BaseModel):
    storefrontId: str = Field(min_length=1)
    productGid: str = Field(min_length=1)
    options: list[VariantOptionModel] = Field(min_length=1)
    variants: list[VariantModel] = Field(default_factory=list)
    defaultPrice: str = "0.00"


class UpdateVariantsRequest(BaseModel):
    storefrontId: str = Field(min_length=1)
    productGid: str = Field(min_length=1)
    variants: list[VariantModel] = Field(min_length=1)


class VariantsMutationResponse(BaseModel):
    storefrontId: str
    productGid: str
    variantIds: list[str]


class DeleteVariantResponse(BaseModel):
    storefrontId: str
    productGid: str
    deletedVariantId: str


class UploadMediaResponse(BaseModel):
    id: str | None = None
    url: str


class AttachMediaRequest(BaseModel):
    storefrontId: str = Field(min_length=1)
    productGid: str = Field(min_length=1)
    media: list[MediaInput] = Field(min_length=1)


class AttachMediaResponse(BaseModel):
    productGid: str
    media: list[MediaItem]


class DeleteMediaResponse(BaseModel):
    productGid: str
    deletedMediaIds: list[str]


class MetafieldDefinitionModel(BaseModel):
    namespace: str
    key: str
    name: str | None = None
    type: str | None = None
    description: str | None = None


class MetafieldDefinitionsResponse(BaseModel):
    definitions: list[MetafieldDefinitionModel]
    byNamespace: dict[str, list[MetafieldDefinitionModel]]


class SyncTemplatesRequest(BaseModel):
    storefrontId: str = Field(min_length=1)


class TemplateFileResult(BaseModel):
    file: str
    success: bool
    error: str | None = None


class SyncTemplatesResponse(BaseModel):
    themeId: str
    success: bool
    results: list[TemplateFileResult]


class GenerateContentRequest(BaseModel):
    prompt: str = Field(min_length=1)
    tone: Literal["professional", "friendly", "urgent", "luxury"] | None = None
    includeReviews: bool = True
    targetAudience: str | None = None


class GenerateContentResponse(BaseModel):
    content: dict[str, str]


class AssistFieldRequest(BaseModel):
    fieldName: str = Field(min_length=1)
    fieldLabel: str = Field(min_length=1)
    productContext: str = ""
    currentValue: str | None = None
    action: Literal["generate", "improve", "shorten", "expand", "translate"]

    @model_validator(mode="after")
    def validate_current_value(self) -> "AssistFieldRequest":
        if self.action != "generate" and not (self.currentValue or "").strip():
            raise ValueError(f"currentValue is required for action '{self.action}'")
        return self


class AssistFieldResponse(BaseModel):
    fieldName: str
    value: str


class TitleSuggestionsRequest(BaseModel):
    description: str = Field(min_length=1)
    count: int = Field(default=5, ge=1, le=10)


class TitleSuggestionsResponse(BaseModel):
    titles: list[str]


class ProductContentRequest(BaseModel):
    name: str = Field(min_length=1)
    category: str = Field(min_length=1)
    description: str | None = None
    targetAudience: str | None = None
    style: str | None = None


class ProductContentResponse(BaseModel):
    content: dict[str, str]

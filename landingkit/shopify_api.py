from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
import logging
import re
from typing import Any, Union

import httpx

from landingkit.config import settings
from landingkit.credentials import CredentialNotFoundError, CredentialStore
from landingkit.token_refresher import TokenRefresher, TokenRefreshError
from landingkit.variants import (
    VariantCombination,
    VariantOption,
    build_variant_input,
    derive_options_from_remote_variants,
    options_to_selected,
    parse_selected_options,
)

logger = logging.getLogger(__name__)

_OPERATION_NAME_RE = re.compile(r"\b(query|mutation)\s+([A-Za-z_][A-Za-z0-9_]*)")
_AUTH_ERROR_MARKERS = ("access token", "invalid api key", "unauthorized")
_ONLINE_STORE_CHANNEL = "online store"


class ShopifyApiError(RuntimeError):
    def __init__(self, *, message: str, status_code: int = 502) -> None:
        super().__init__(message)
        self.status_code = status_code


@dataclass(frozen=True)
class GraphQLOk:
    data: dict[str, Any]


@dataclass(frozen=True)
class GraphQLAuthError:
    message: str
    status_code: int = 401


@dataclass(frozen=True)
class GraphQLFailure:
    message: str
    status_code: int = 502


GraphQLResult = Union[GraphQLOk, GraphQLAuthError, GraphQLFailure]


@dataclass
class PublishResult:
    published: list[str] = field(default_factory=list)
    failed: list[dict[str, str]] = field(default_factory=list)


@dataclass(frozen=True)
class UploadedFile:
    id: str | None
    url: str


@dataclass
class ThemeSyncResult:
    theme_id: str
    results: list[dict[str, Any]] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return all(item["success"] for item in self.results)


def operation_name(query: str) -> str:
    match = _OPERATION_NAME_RE.search(query)
    if match:
        return match.group(2)
    return "anonymous"


def is_auth_error_message(message: str) -> bool:
    lowered = message.lower()
    return any(marker in lowered for marker in _AUTH_ERROR_MARKERS)


def _first_error_message(errors: Any) -> str:
    if isinstance(errors, str):
        return errors
    if isinstance(errors, list) and errors:
        first = errors[0]
        if isinstance(first, dict) and isinstance(first.get("message"), str):
            return first["message"]
        return str(first)
    if isinstance(errors, dict) and isinstance(errors.get("message"), str):
        return errors["message"]
    return str(errors)


PRODUCTS_LIST_QUERY = """
query listProducts($first: Int!, $query: String) {
    products(first: $first, query: $query, sortKey: UPDATED_AT, reverse: true) {
        edges {
            node {
                id
                title
                handle
                status
                templateSuffix
                featuredImage {
                    url
                }
                variants(first: 1) {
                    edges {
                        node {
                            id
                            price
                            sku
                        }
                    }
                }
            }
        }
    }
}
"""

PRODUCT_FULL_QUERY = """
query getProductFull($id: ID!) {
    product(id: $id) {
        id
        title
        handle
        status
        descriptionHtml
        vendor
        productType
        templateSuffix
        options {
            id
            name
            values
        }
        variants(first: 100) {
            edges {
                node {
                    id
                    title
                    price
                    compareAtPrice
                    sku
                    inventoryQuantity
                    selectedOptions {
                        name
                        value
                    }
                    media(first: 1) {
                        edges {
                            node {
                                ... on MediaImage {
                                    id
                                    image {
                                        url
                                    }
                                }
                            }
                        }
                    }
                }
            }
        }
        media(first: 50) {
            edges {
                node {
                    ... on MediaImage {
                        id
                        status
                        image {
                            url
                            altText
                        }
                    }
                }
            }
        }
        metafields(first: 100) {
            edges {
                node {
                    id
                    namespace
                    key
                    value
                    type
                }
            }
        }
    }
}
"""

PRODUCT_CREATE_MUTATION = """
mutation productCreate($product: ProductCreateInput!) {
    productCreate(product: $product) {
        product {
            id
            title
            handle
            status
            variants(first: 1) {
                edges {
                    node {
                        id
                    }
                }
            }
        }
        userErrors {
            field
            message
        }
    }
}
"""

PRODUCT_UPDATE_MUTATION = """
mutation productUpdate($product: ProductUpdateInput!) {
    productUpdate(product: $product) {
        product {
            id
            title
            handle
        }
        userErrors {
            field
            message
        }
    }
}
"""

PRODUCT_DELETE_MUTATION = """
mutation productDelete($input: ProductDeleteInput!) {
    productDelete(input: $input) {
        deletedProductId
        userErrors {
            field
            message
        }
    }
}
"""

METAFIELDS_SET_MUTATION = """
mutation metafieldsSet($metafields: [MetafieldsSetInput!]!) {
    metafieldsSet(metafields: $metafields) {
        metafields {
            id
            namespace
            key
        }
        userErrors {
            field
            message
        }
    }
}
"""

METAFIELD_DEFINITIONS_QUERY = """
query metafieldDefinitions($ownerType: MetafieldOwnerType!, $first: Int!) {
    metafieldDefinitions(ownerType: $ownerType, first: $first) {
        edges {
            node {
                id
                namespace
                key
                name
                description
                type {
                    name
                }
            }
        }
    }
}
"""

PUBLICATIONS_QUERY = """
query getPublications {
    publications(first: 20) {
        edges {
            node {
                id
                name
            }
        }
    }
}
"""

PUBLISH_PRODUCT_MUTATION = """
mutation publishablePublish($id: ID!, $input: [PublicationInput!]!) {
    publishablePublish(id: $id, input: $input) {
        userErrors {
            field
            message
        }
    }
}
"""

UNPUBLISH_PRODUCT_MUTATION = """
mutation publishableUnpublish($id: ID!, $input: [PublicationInput!]!) {
    publishableUnpublish(id: $id, input: $input) {
        userErrors {
            field
            message
        }
    }
}
"""

PRODUCT_VARIANTS_QUERY = """
query getProductVariants($id: ID!) {
    product(id: $id) {
        id
        options {
            name
            values
        }
        variants(first: 100) {
            edges {
                node {
                    id
                    title
                    price
                    compareAtPrice
                    sku
                    inventoryQuantity
                    selectedOptions {
                        name
                        value
                    }
                }
            }
        }
    }
}
"""

VARIANTS_BULK_CREATE_MUTATION = """
mutation productVariantsBulkCreate(
    $productId: ID!
    $variants: [ProductVariantsBulkInput!]!
    $strategy: ProductVariantsBulkCreateStrategy
) {
    productVariantsBulkCreate(productId: $productId, variants: $variants, strategy: $strategy) {
        productVariants {
            id
            title
            price
            compareAtPrice
            sku
            selectedOptions {
                name
                value
            }
        }
        userErrors {
            field
            message
        }
    }
}
"""

VARIANTS_BULK_UPDATE_MUTATION = """
mutation productVariantsBulkUpdate($productId: ID!, $variants: [ProductVariantsBulkInput!]!) {
    productVariantsBulkUpdate(productId: $productId, variants: $variants) {
        productVariants {
            id
            title
            price
            compareAtPrice
            sku
        }
        userErrors {
            field
            message
        }
    }
}
"""

VARIANTS_BULK_DELETE_MUTATION = """
mutation productVariantsBulkDelete($productId: ID!, $variantsIds: [ID!]!) {
    productVariantsBulkDelete(productId: $productId, variantsIds: $variantsIds) {
        product {
            id
        }
        userErrors {
            field
            message
        }
    }
}
"""

PRIMARY_LOCATION_QUERY = """
query primaryLocation {
    locations(first: 1) {
        edges {
            node {
                id
            }
        }
    }
}
"""

STAGED_UPLOADS_CREATE_MUTATION = """
mutation stagedUploadsCreate($input: [StagedUploadInput!]!) {
    stagedUploadsCreate(input: $input) {
        stagedTargets {
            url
            resourceUrl
            parameters {
                name
                value
            }
        }
        userErrors {
            field
            message
        }
    }
}
"""

FILE_CREATE_MUTATION = """
mutation fileCreate($files: [FileCreateInput!]!) {
    fileCreate(files: $files) {
        files {
            ... on MediaImage {
                id
                image {
                    url
                }
                preview {
                    image {
                        url
                    }
                }
            }
        }
        userErrors {
            field
            message
        }
    }
}
"""

FILE_STATUS_QUERY = """
query fileStatus($ids: [ID!]!) {
    nodes(ids: $ids) {
        ... on MediaImage {
            id
            image {
                url
            }
            preview {
                image {
                    url
                }
            }
        }
    }
}
"""

PRODUCT_CREATE_MEDIA_MUTATION = """
mutation productCreateMedia($productId: ID!, $media: [CreateMediaInput!]!) {
    productCreateMedia(productId: $productId, media: $media) {
        media {
            ... on MediaImage {
                id
                status
                image {
                    url
                    altText
                }
            }
        }
        mediaUserErrors {
            field
            message
        }
    }
}
"""

PRODUCT_DELETE_MEDIA_MUTATION = """
mutation productDeleteMedia($productId: ID!, $mediaIds: [ID!]!) {
    productDeleteMedia(productId: $productId, mediaIds: $mediaIds) {
        deletedMediaIds
        mediaUserErrors {
            field
            message
        }
    }
}
"""


class ShopifyApiClient:
    def __init__(
        self,
        *,
        store: CredentialStore,
        refresher: TokenRefresher,
        api_version: str | None = None,
        timeout: float | None = None,
        media_poll_attempts: int | None = None,
        media_poll_interval: float | None = None,
    ) -> None:
        self._store = store
        self._refresher = refresher
        self._api_version = api_version or settings.SHOPIFY_ADMIN_API_VERSION
        self._timeout = timeout if timeout is not None else settings.SHOPIFY_REQUEST_TIMEOUT_SECONDS
        self._media_poll_attempts = (
            media_poll_attempts if media_poll_attempts is not None else settings.MEDIA_POLL_ATTEMPTS
        )
        self._media_poll_interval = (
            media_poll_interval if media_poll_interval is not None else settings.MEDIA_POLL_INTERVAL_SECONDS
        )

    def _shop_domain(self, storefront_id: str) -> str:
        record = self._store.get(storefront_id)
        if record is None:
            raise ShopifyApiError(message=f"Storefront not found: {storefront_id}", status_code=404)
        return record.shop_domain

    # -- transport ---------------------------------------------------------

    async def _send(
        self,
        *,
        method: str,
        url: str,
        access_token: str,
        json_body: dict[str, Any] | None,
    ) -> GraphQLResult | tuple[int, Any]:
        headers = {
            "Content-Type": "application/json",
            "X-Shopify-Access-Token": access_token,
        }
        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                response = await client.request(method, url, json=json_body, headers=headers)
        except httpx.RequestError as exc:
            return GraphQLFailure(message=f"Network error while calling Shopify: {exc}")

        if response.status_code == 401:
            return GraphQLAuthError(message=f"Shopify rejected the access token (401): {response.text}")
        if response.status_code >= 400:
            return GraphQLFailure(message=f"Shopify API call failed ({response.status_code}): {response.text}")

        try:
            body = response.json()
        except ValueError:
            return GraphQLFailure(message="Shopify API returned invalid JSON")
        return response.status_code, body

    async def _execute(self, *, shop_domain: str, access_token: str, payload: dict[str, Any]) -> GraphQLResult:
        url = f"https://{shop_domain}/admin/api/{self._api_version}/graphql.json"
        sent = await self._send(method="POST", url=url, access_token=access_token, json_body=payload)
        if not isinstance(sent, tuple):
            return sent
        _, body = sent
        if not isinstance(body, dict):
            return GraphQLFailure(message="Shopify API response must be a JSON object")

        errors = body.get("errors")
        if errors:
            message = _first_error_message(errors)
            if is_auth_error_message(message):
                return GraphQLAuthError(message=message)
            return GraphQLFailure(message=message)

        data = body.get("data")
        if not isinstance(data, dict):
            return GraphQLFailure(message="Admin GraphQL response is missing data")
        return GraphQLOk(data=data)

    async def _execute_rest(
        self,
        *,
        shop_domain: str,
        access_token: str,
        method: str,
        path: str,
        json_body: dict[str, Any] | None,
    ) -> GraphQLResult:
        url = f"https://{shop_domain}/admin/api/{self._api_version}/{path.lstrip('/')}"
        sent = await self._send(method=method, url=url, access_token=access_token, json_body=json_body)
        if not isinstance(sent, tuple):
            return sent
        _, body = sent
        if not isinstance(body, dict):
            return GraphQLFailure(message="Shopify REST response must be a JSON object")
        errors = body.get("errors")
        if errors:
            message = _first_error_message(errors)
            if is_auth_error_message(message):
                return GraphQLAuthError(message=message)
            return GraphQLFailure(message=message, status_code=400)
        return GraphQLOk(data=body)

    async def _with_auth_retry(
        self,
        *,
        storefront_id: str,
        operation: str,
        call: Callable[[str, str], Awaitable[GraphQLResult]],
    ) -> dict[str, Any]:
        shop_domain = self._shop_domain(storefront_id)
        try:
            access_token = await self._refresher.get_valid_credential(storefront_id)
        except CredentialNotFoundError as exc:
            raise ShopifyApiError(message=str(exc), status_code=404) from exc
        except TokenRefreshError as exc:
            raise ShopifyApiError(message=str(exc), status_code=exc.status_code) from exc

        result = await call(shop_domain, access_token)
        if isinstance(result, GraphQLAuthError):
            logger.warning(
                "Shopify rejected access token; forcing refresh",
                extra={"operation": operation, "storefrontId": storefront_id, "error": result.message},
            )
            try:
                access_token = await self._refresher.force_refresh(storefront_id, stale_token=access_token)
            except TokenRefreshError as exc:
                logger.error(
                    "Forced token refresh failed",
                    extra={"operation": operation, "storefrontId": storefront_id, "error": str(exc)},
                )
                raise ShopifyApiError(message=result.message, status_code=result.status_code) from exc
            result = await call(shop_domain, access_token)

        if isinstance(result, GraphQLOk):
            return result.data

        logger.error(
            "Shopify request failed",
            extra={
                "operation": operation,
                "storefrontId": storefront_id,
                "statusCode": result.status_code,
                "error": result.message,
            },
        )
        raise ShopifyApiError(message=result.message or "Shopify API error", status_code=result.status_code)

    async def request(
        self,
        storefront_id: str,
        query: str,
        variables: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        payload: dict[str, Any] = {"query": query}
        if variables is not None:
            payload["variables"] = variables

        async def call(shop_domain: str, access_token: str) -> GraphQLResult:
            return await self._execute(shop_domain=shop_domain, access_token=access_token, payload=payload)

        return await self._with_auth_retry(
            storefront_id=storefront_id,
            operation=operation_name(query),
            call=call,
        )

    async def rest_request(
        self,
        storefront_id: str,
        method: str,
        path: str,
        json_body: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        async def call(shop_domain: str, access_token: str) -> GraphQLResult:
            return await self._execute_rest(
                shop_domain=shop_domain,
                access_token=access_token,
                method=method,
                path=path,
                json_body=json_body,
            )

        return await self._with_auth_retry(
            storefront_id=storefront_id,
            operation=f"{method.upper()} {path}",
            call=call,
        )

    @staticmethod
    def _assert_no_user_errors(*, user_errors: Any, mutation_name: str) -> None:
        if not user_errors:
            return
        first = user_errors[0] if isinstance(user_errors, list) else user_errors
        message = first.get("message") if isinstance(first, dict) else str(first)
        raise ShopifyApiError(message=f"{mutation_name} failed: {message}", status_code=400)

    async def fetch_shop_info(self, *, shop_domain: str, access_token: str) -> dict[str, Any]:
        """Check a token against ``shop.json`` before it is stored."""
        url = f"https://{shop_domain}/admin/api/{self._api_version}/shop.json"
        sent = await self._send(method="GET", url=url, access_token=access_token, json_body=None)
        if isinstance(sent, GraphQLAuthError):
            raise ShopifyApiError(message="Invalid Shopify credentials", status_code=401)
        if isinstance(sent, GraphQLFailure):
            raise ShopifyApiError(message=sent.message, status_code=sent.status_code)
        _, body = sent
        shop = body.get("shop") if isinstance(body, dict) else None
        if not isinstance(shop, dict):
            raise ShopifyApiError(message="Shopify shop.json response is missing shop")
        return shop

    # -- products ----------------------------------------------------------

    async def list_products(
        self,
        storefront_id: str,
        *,
        query: str | None = None,
        limit: int = 20,
    ) -> list[dict[str, Any]]:
        search_query = (query or "").strip()
        response = await self.request(
            storefront_id,
            PRODUCTS_LIST_QUERY,
            {"first": limit, "query": search_query or None},
        )
        edges = (response.get("products") or {}).get("edges") or []
        products: list[dict[str, Any]] = []
        for edge in edges:
            node = edge.get("node") if isinstance(edge, dict) else None
            if not isinstance(node, dict):
                continue
            first_variant = (((node.get("variants") or {}).get("edges") or [{}])[0] or {}).get("node") or {}
            products.append(
                {
                    "id": node.get("id"),
                    "title": node.get("title"),
                    "handle": node.get("handle"),
                    "status": node.get("status"),
                    "templateSuffix": node.get("templateSuffix"),
                    "imageUrl": (node.get("featuredImage") or {}).get("url"),
                    "price": first_variant.get("price"),
                    "sku": first_variant.get("sku"),
                }
            )
        return products

    async def get_product(self, storefront_id: str, product_gid: str) -> dict[str, Any]:
        response = await self.request(storefront_id, PRODUCT_FULL_QUERY, {"id": product_gid})
        product = response.get("product")
        if not isinstance(product, dict):
            raise ShopifyApiError(message=f"Product not found for GID: {product_gid}", status_code=404)

        media: list[dict[str, Any]] = []
        for edge in (product.get("media") or {}).get("edges") or []:
            node = edge.get("node") or {}
            image = node.get("image") or {}
            if node.get("id") and image.get("url"):
                media.append({"id": node["id"], "url": image["url"], "altText": image.get("altText")})

        metafields: dict[str, dict[str, str]] = {}
        for edge in (product.get("metafields") or {}).get("edges") or []:
            node = edge.get("node") or {}
            namespace = node.get("namespace")
            key = node.get("key")
            if isinstance(namespace, str) and isinstance(key, str):
                metafields.setdefault(namespace, {})[key] = node.get("value")

        return {
            "id": product.get("id"),
            "title": product.get("title"),
            "handle": product.get("handle"),
            "status": product.get("status"),
            "descriptionHtml": product.get("descriptionHtml"),
            "vendor": product.get("vendor"),
            "productType": product.get("productType"),
            "templateSuffix": product.get("templateSuffix"),
            "options": [
                VariantOption(name=option["name"], values=list(option.get("values") or []))
                for option in product.get("options") or []
                if isinstance(option, dict) and isinstance(option.get("name"), str)
            ],
            "variants": self._parse_variant_edges((product.get("variants") or {}).get("edges") or []),
            "media": media,
            "metafields": metafields,
        }

    async def create_product(
        self,
        storefront_id: str,
        *,
        title: str,
        description_html: str | None = None,
        template_suffix: str | None = "landing",
        status: str = "ACTIVE",
    ) -> dict[str, Any]:
        product_input: dict[str, Any] = {"title": title, "status": status}
        if description_html:
            product_input["descriptionHtml"] = description_html
        if template_suffix:
            product_input["templateSuffix"] = template_suffix

        response = await self.request(storefront_id, PRODUCT_CREATE_MUTATION, {"product": product_input})
        create_data = response.get("productCreate") or {}
        self._assert_no_user_errors(user_errors=create_data.get("userErrors"), mutation_name="productCreate")

        product = create_data.get("product") or {}
        product_gid = product.get("id")
        if not isinstance(product_gid, str) or not product_gid:
            raise ShopifyApiError(message="productCreate response is missing product.id")
        variant_edges = (product.get("variants") or {}).get("edges") or []
        default_variant_id = (variant_edges[0].get("node") or {}).get("id") if variant_edges else None
        return {
            "productGid": product_gid,
            "title": product.get("title") or title,
            "handle": product.get("handle"),
            "status": product.get("status") or status,
            "defaultVariantId": default_variant_id,
        }

    async def update_product(
        self,
        storefront_id: str,
        product_gid: str,
        *,
        title: str | None = None,
        description_html: str | None = None,
    ) -> dict[str, Any]:
        product_input: dict[str, Any] = {"id": product_gid}
        if title:
            product_input["title"] = title
        if description_html is not None:
            product_input["descriptionHtml"] = description_html

        response = await self.request(storefront_id, PRODUCT_UPDATE_MUTATION, {"product": product_input})
        update_data = response.get("productUpdate") or {}
        self._assert_no_user_errors(user_errors=update_data.get("userErrors"), mutation_name="productUpdate")
        return update_data.get("product") or {"id": product_gid}

    async def delete_product(self, storefront_id: str, product_gid: str) -> str:
        response = await self.request(storefront_id, PRODUCT_DELETE_MUTATION, {"input": {"id": product_gid}})
        delete_data = response.get("productDelete") or {}
        self._assert_no_user_errors(user_errors=delete_data.get("userErrors"), mutation_name="productDelete")
        return delete_data.get("deletedProductId") or product_gid

    async def set_metafields(self, storefront_id: str, metafields: list[dict[str, Any]]) -> int:
        if not metafields:
            return 0
        response = await self.request(storefront_id, METAFIELDS_SET_MUTATION, {"metafields": metafields})
        set_data = response.get("metafieldsSet") or {}
        self._assert_no_user_errors(user_errors=set_data.get("userErrors"), mutation_name="metafieldsSet")
        return len(set_data.get("metafields") or [])

    async def list_metafield_definitions(
        self,
        storefront_id: str,
        *,
        owner_type: str = "PRODUCT",
        limit: int = 100,
    ) -> list[dict[str, Any]]:
        response = await self.request(
            storefront_id,
            METAFIELD_DEFINITIONS_QUERY,
            {"ownerType": owner_type, "first": limit},
        )
        definitions: list[dict[str, Any]] = []
        for edge in (response.get("metafieldDefinitions") or {}).get("edges") or []:
            node = edge.get("node") or {}
            definitions.append(
                {
                    "id": node.get("id"),
                    "namespace": node.get("namespace"),
                    "key": node.get("key"),
                    "name": node.get("name"),
                    "description": node.get("description"),
                    "type": (node.get("type") or {}).get("name"),
                }
            )
        return definitions

    # -- publication -------------------------------------------------------

    async def list_publications(self, storefront_id: str) -> list[dict[str, str]]:
        response = await self.request(storefront_id, PUBLICATIONS_QUERY)
        publications: list[dict[str, str]] = []
        for edge in (response.get("publications") or {}).get("edges") or []:
            node = edge.get("node") or {}
            if isinstance(node.get("id"), str):
                publications.append({"id": node["id"], "name": str(node.get("name") or "")})
        return publications

    @staticmethod
    def _find_online_store(publications: list[dict[str, str]]) -> dict[str, str] | None:
        for publication in publications:
            name = publication["name"].lower()
            if name == _ONLINE_STORE_CHANNEL or "online" in name:
                return publication
        return None

    async def publish_product(self, storefront_id: str, product_gid: str) -> PublishResult:
        """Publish to the Online Store channel, or to every channel when it is missing.

        Per-channel failures are collected so an already-created product is never rolled back.
        """
        publications = await self.list_publications(storefront_id)
        online_store = self._find_online_store(publications)
        targets = [online_store] if online_store else publications

        result = PublishResult()
        for publication in targets:
            try:
                response = await self.request(
                    storefront_id,
                    PUBLISH_PRODUCT_MUTATION,
                    {"id": product_gid, "input": [{"publicationId": publication["id"]}]},
                )
                self._assert_no_user_errors(
                    user_errors=(response.get("publishablePublish") or {}).get("userErrors"),
                    mutation_name="publishablePublish",
                )
            except ShopifyApiError as exc:
                if "already published" in str(exc).lower():
                    result.published.append(publication["name"])
                    continue
                logger.warning(
                    "Could not publish product to channel",
                    extra={"storefrontId": storefront_id, "channel": publication["name"], "error": str(exc)},
                )
                result.failed.append({"channel": publication["name"], "error": str(exc)})
                continue
            result.published.append(publication["name"])
        return result

    async def unpublish_product(self, storefront_id: str, product_gid: str) -> None:
        online_store = self._find_online_store(await self.list_publications(storefront_id))
        if online_store is None:
            raise ShopifyApiError(message="Online Store channel not found", status_code=404)
        response = await self.request(
            storefront_id,
            UNPUBLISH_PRODUCT_MUTATION,
            {"id": product_gid, "input": [{"publicationId": online_store["id"]}]},
        )
        self._assert_no_user_errors(
            user_errors=(response.get("publishableUnpublish") or {}).get("userErrors"),
            mutation_name="publishableUnpublish",
        )

    # -- variants ----------------------------------------------------------

    @staticmethod
    def _parse_variant_edges(edges: list[Any]) -> list[VariantCombination]:
        combinations: list[VariantCombination] = []
        for edge in edges:
            node = edge.get("node") if isinstance(edge, dict) else None
            if not isinstance(node, dict):
                continue
            media_edges = (node.get("media") or {}).get("edges") or []
            media_node = (media_edges[0].get("node") or {}) if media_edges else {}
            combinations.append(
                VariantCombination(
                    id=node.get("id"),
                    options=parse_selected_options(node.get("selectedOptions") or []),
                    price=str(node.get("price") or "0.00"),
                    compare_at_price=node.get("compareAtPrice"),
                    sku=node.get("sku"),
                    inventory_quantity=node.get("inventoryQuantity"),
                    image_id=media_node.get("id"),
                    image_url=(media_node.get("image") or {}).get("url"),
                )
            )
        return combinations

    async def get_product_variants(
        self,
        storefront_id: str,
        product_gid: str,
    ) -> tuple[list[VariantOption], list[VariantCombination]]:
        response = await self.request(storefront_id, PRODUCT_VARIANTS_QUERY, {"id": product_gid})
        product = response.get("product")
        if not isinstance(product, dict):
            raise ShopifyApiError(message=f"Product not found for GID: {product_gid}", status_code=404)
        options = [
            VariantOption(name=option["name"], values=list(option.get("values") or []))
            for option in product.get("options") or []
            if isinstance(option, dict) and isinstance(option.get("name"), str)
        ]
        variants = self._parse_variant_edges((product.get("variants") or {}).get("edges") or [])
        if not options:
            options = derive_options_from_remote_variants(
                {"selectedOptions": options_to_selected(item.options)}
                for item in variants
            )
        return options, variants

    async def get_primary_location_id(self, storefront_id: str) -> str | None:
        response = await self.request(storefront_id, PRIMARY_LOCATION_QUERY)
        edges = (response.get("locations") or {}).get("edges") or []
        if not edges:
            return None
        return (edges[0].get("node") or {}).get("id")

    async def create_variants(
        self,
        storefront_id: str,
        product_gid: str,
        combinations: list[VariantCombination],
        *,
        location_id: str | None = None,
        replace_standalone_variant: bool = True,
    ) -> list[dict[str, Any]]:
        variables: dict[str, Any] = {
            "productId": product_gid,
            "variants": [build_variant_input(item, location_id=location_id) for item in combinations],
        }
        if replace_standalone_variant:
            variables["strategy"] = "REMOVE_STANDALONE_VARIANT"
        response = await self.request(storefront_id, VARIANTS_BULK_CREATE_MUTATION, variables)
        create_data = response.get("productVariantsBulkCreate") or {}
        self._assert_no_user_errors(
            user_errors=create_data.get("userErrors"),
            mutation_name="productVariantsBulkCreate",
        )
        return create_data.get("productVariants") or []

    async def update_variants(
        self,
        storefront_id: str,
        product_gid: str,
        combinations: list[VariantCombination],
    ) -> list[dict[str, Any]]:
        missing_ids = [item for item in combinations if not item.id]
        if missing_ids:
            raise ShopifyApiError(message="Every variant to update must carry its remote id", status_code=400)
        response = await self.request(
            storefront_id,
            VARIANTS_BULK_UPDATE_MUTATION,
            {
                "productId": product_gid,
                "variants": [build_variant_input(item, include_option_values=False) for item in combinations],
            },
        )
        update_data = response.get("productVariantsBulkUpdate") or {}
        self._assert_no_user_errors(
            user_errors=update_data.get("userErrors"),
            mutation_name="productVariantsBulkUpdate",
        )
        return update_data.get("productVariants") or []

    async def delete_variant(self, storefront_id: str, product_gid: str, variant_gid: str) -> str:
        response = await self.request(
            storefront_id,
            VARIANTS_BULK_DELETE_MUTATION,
            {"productId": product_gid, "variantsIds": [variant_gid]},
        )
        delete_data = response.get("productVariantsBulkDelete") or {}
        self._assert_no_user_errors(
            user_errors=delete_data.get("userErrors"),
            mutation_name="productVariantsBulkDelete",
        )
        return variant_gid

    # -- media -------------------------------------------------------------

    @staticmethod
    def _file_url(node: dict[str, Any] | None) -> str | None:
        if not isinstance(node, dict):
            return None
        image_url = (node.get("image") or {}).get("url")
        if image_url:
            return image_url
        return ((node.get("preview") or {}).get("image") or {}).get("url")

    async def _wait_for_file_url(self, storefront_id: str, file_id: str) -> str | None:
        for attempt in range(self._media_poll_attempts):
            response = await self.request(storefront_id, FILE_STATUS_QUERY, {"ids": [file_id]})
            nodes = response.get("nodes") or []
            url = self._file_url(nodes[0] if nodes else None)
            if url:
                return url
            logger.debug(
                "Uploaded file not ready yet",
                extra={"storefrontId": storefront_id, "fileId": file_id, "attempt": attempt + 1},
            )
            await asyncio.sleep(self._media_poll_interval)
        return None

    async def _upload_to_staged_target(
        self,
        *,
        target: dict[str, Any],
        filename: str,
        mime_type: str,
        content: bytes,
    ) -> None:
        form = {param["name"]: param["value"] for param in target.get("parameters") or []}
        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                response = await client.post(
                    target["url"],
                    data=form,
                    files={"file": (filename, content, mime_type)},
                )
        except httpx.RequestError as exc:
            raise ShopifyApiError(message=f"Network error while uploading file to Shopify: {exc}") from exc
        if response.status_code >= 400:
            raise ShopifyApiError(message=f"Failed to upload file to Shopify: {response.status_code}")

    async def upload_image(
        self,
        storefront_id: str,
        *,
        filename: str,
        mime_type: str,
        content: bytes,
    ) -> UploadedFile:
        staged = await self.request(
            storefront_id,
            STAGED_UPLOADS_CREATE_MUTATION,
            {
                "input": [
                    {
                        "filename": filename,
                        "mimeType": mime_type or "image/jpeg",
                        "resource": "IMAGE",
                        "httpMethod": "POST",
                    }
                ]
            },
        )
        staged_data = staged.get("stagedUploadsCreate") or {}
        self._assert_no_user_errors(user_errors=staged_data.get("userErrors"), mutation_name="stagedUploadsCreate")
        targets = staged_data.get("stagedTargets") or []
        if not targets:
            raise ShopifyApiError(message="stagedUploadsCreate returned no upload target")
        target = targets[0]

        await self._upload_to_staged_target(
            target=target,
            filename=filename,
            mime_type=mime_type or "image/jpeg",
            content=content,
        )

        created = await self.request(
            storefront_id,
            FILE_CREATE_MUTATION,
            {"files": [{"originalSource": target["resourceUrl"], "contentType": "IMAGE"}]},
        )
        create_data = created.get("fileCreate") or {}
        self._assert_no_user_errors(user_errors=create_data.get("userErrors"), mutation_name="fileCreate")
        files = create_data.get("files") or []
        created_file = files[0] if files else {}

        file_id = created_file.get("id") if isinstance(created_file, dict) else None
        url = self._file_url(created_file)
        if not url and file_id:
            url = await self._wait_for_file_url(storefront_id, file_id)
        if not url:
            logger.info(
                "Falling back to staged resource URL",
                extra={"storefrontId": storefront_id, "fileId": file_id},
            )
            url = target["resourceUrl"]
        return UploadedFile(id=file_id, url=url)

    async def attach_product_media(
        self,
        storefront_id: str,
        product_gid: str,
        media: list[dict[str, str]],
    ) -> list[dict[str, Any]]:
        response = await self.request(
            storefront_id,
            PRODUCT_CREATE_MEDIA_MUTATION,
            {
                "productId": product_gid,
                "media": [
                    {
                        "originalSource": item["url"],
                        "alt": item.get("altText") or "",
                        "mediaContentType": "IMAGE",
                    }
                    for item in media
                ],
            },
        )
        create_data = response.get("productCreateMedia") or {}
        self._assert_no_user_errors(
            user_errors=create_data.get("mediaUserErrors"),
            mutation_name="productCreateMedia",
        )
        return [item for item in create_data.get("media") or [] if isinstance(item, dict)]

    async def delete_product_media(self, storefront_id: str, product_gid: str, media_ids: list[str]) -> list[str]:
        response = await self.request(
            storefront_id,
            PRODUCT_DELETE_MEDIA_MUTATION,
            {"productId": product_gid, "mediaIds": media_ids},
        )
        delete_data = response.get("productDeleteMedia") or {}
        self._assert_no_user_errors(
            user_errors=delete_data.get("mediaUserErrors"),
            mutation_name="productDeleteMedia",
        )
        return list(delete_data.get("deletedMediaIds") or [])

    # -- theme -------------------------------------------------------------

    async def get_main_theme_id(self, storefront_id: str) -> str:
        response = await self.rest_request(storefront_id, "GET", "themes.json")
        for theme in response.get("themes") or []:
            if isinstance(theme, dict) and theme.get("role") == "main" and theme.get("id") is not None:
                return str(theme["id"])
        raise ShopifyApiError(message="Could not find main theme", status_code=400)

    async def sync_theme_templates(
        self,
        storefront_id: str,
        files: list[dict[str, str]],
    ) -> ThemeSyncResult:
        theme_id = await self.get_main_theme_id(storefront_id)
        result = ThemeSyncResult(theme_id=theme_id)
        for item in files:
            try:
                await self.rest_request(
                    storefront_id,
                    "PUT",
                    f"themes/{theme_id}/assets.json",
                    {"asset": {"key": item["key"], "value": item["content"]}},
                )
            except ShopifyApiError as exc:
                logger.warning(
                    "Theme asset upload failed",
                    extra={"storefrontId": storefront_id, "asset": item["key"], "error": str(exc)},
                )
                result.results.append({"file": item["key"], "success": False, "error": str(exc)})
                continue
            result.results.append({"file": item["key"], "success": True, "error": None})
        return result

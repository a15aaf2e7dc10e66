# api/queries.py
# GraphQL documents for the store Admin API. Connection queries take $first / $after and
# expose nodes + pageInfo so they can be walked by ShopAPI.paginate.
from storesync.utils.constants import DISCOVERY_NAMESPACE

PAGE_INFO = "pageInfo { hasNextPage endCursor }"
USER_ERRORS = "userErrors { field message code }"
METAFIELD_NODES = "metafields(first: 100) { nodes { namespace key type value } }"

SHOP_QUERY = """
query Shop {
  shop { id name myshopifyDomain }
}
"""

# Locations

LOCATIONS_QUERY = f"""
query Locations($first: Int!, $after: String) {{
  locations(first: $first, after: $after, includeInactive: true) {{
    nodes {{
      id
      name
      isActive
      fulfillsOnlineOrders
      address {{ address1 address2 city provinceCode countryCode zip phone }}
    }}
    {PAGE_INFO}
  }}
}}
"""

LOCATION_ADD = f"""
mutation LocationAdd($input: LocationAddInput!) {{
  locationAdd(input: $input) {{
    location {{ id name isActive }}
    {USER_ERRORS}
  }}
}}
"""

# Definitions

METAOBJECT_DEFINITIONS_QUERY = f"""
query MetaobjectDefinitions($first: Int!, $after: String) {{
  metaobjectDefinitions(first: $first, after: $after) {{
    nodes {{
      id
      type
      name
      description
      displayNameKey
      access {{ storefront }}
      capabilities {{
        publishable {{ enabled }}
        translatable {{ enabled }}
      }}
      fieldDefinitions {{
        key
        name
        description
        required
        type {{ name }}
        validations {{ name value }}
      }}
    }}
    {PAGE_INFO}
  }}
}}
"""

METAOBJECT_DEFINITION_CREATE = f"""
mutation MetaobjectDefinitionCreate($definition: MetaobjectDefinitionCreateInput!) {{
  metaobjectDefinitionCreate(definition: $definition) {{
    metaobjectDefinition {{ id type }}
    {USER_ERRORS}
  }}
}}
"""

METAOBJECT_DEFINITION_UPDATE = f"""
mutation MetaobjectDefinitionUpdate($id: ID!, $definition: MetaobjectDefinitionUpdateInput!) {{
  metaobjectDefinitionUpdate(id: $id, definition: $definition) {{
    metaobjectDefinition {{ id type }}
    {USER_ERRORS}
  }}
}}
"""

METAFIELD_DEFINITIONS_QUERY = f"""
query MetafieldDefinitions($ownerType: MetafieldOwnerType!, $first: Int!, $after: String) {{
  metafieldDefinitions(ownerType: $ownerType, first: $first, after: $after) {{
    nodes {{
      id
      name
      namespace
      key
      description
      ownerType
      type {{ name }}
      validations {{ name value }}
      access {{ storefront }}
    }}
    {PAGE_INFO}
  }}
}}
"""

METAFIELD_DEFINITION_CREATE = f"""
mutation MetafieldDefinitionCreate($definition: MetafieldDefinitionInput!) {{
  metafieldDefinitionCreate(definition: $definition) {{
    createdDefinition {{ id namespace key }}
    {USER_ERRORS}
  }}
}}
"""

METAFIELD_DEFINITION_UPDATE = f"""
mutation MetafieldDefinitionUpdate($definition: MetafieldDefinitionUpdateInput!) {{
  metafieldDefinitionUpdate(definition: $definition) {{
    updatedDefinition {{ id namespace key }}
    {USER_ERRORS}
  }}
}}
"""

METAFIELDS_SET = f"""
mutation MetafieldsSet($metafields: [MetafieldsSetInput!]!) {{
  metafieldsSet(metafields: $metafields) {{
    metafields {{ namespace key }}
    {USER_ERRORS}
  }}
}}
"""

# Files

FILES_QUERY = f"""
query Files($first: Int!, $after: String) {{
  files(first: $first, after: $after) {{
    nodes {{
      __typename
      id
      alt
      fileStatus
      ... on MediaImage {{ image {{ url }} }}
      ... on GenericFile {{ url }}
      ... on Video {{ originalSource {{ url }} }}
    }}
    {PAGE_INFO}
  }}
}}
"""

FILE_CREATE = f"""
mutation FileCreate($files: [FileCreateInput!]!) {{
  fileCreate(files: $files) {{
    files {{ id alt fileStatus }}
    {USER_ERRORS}
  }}
}}
"""

FILE_UPDATE = f"""
mutation FileUpdate($files: [FileUpdateInput!]!) {{
  fileUpdate(files: $files) {{
    files {{ id alt }}
    {USER_ERRORS}
  }}
}}
"""

# Metaobject entries

METAOBJECTS_QUERY = f"""
query Metaobjects($type: String!, $first: Int!, $after: String) {{
  metaobjects(type: $type, first: $first, after: $after) {{
    nodes {{
      id
      handle
      type
      displayName
      capabilities {{ publishable {{ status }} }}
      fields {{ key type value }}
    }}
    {PAGE_INFO}
  }}
}}
"""

METAOBJECT_UPSERT = f"""
mutation MetaobjectUpsert($handle: MetaobjectHandleInput!, $metaobject: MetaobjectUpsertInput!) {{
  metaobjectUpsert(handle: $handle, metaobject: $metaobject) {{
    metaobject {{ id handle type }}
    {USER_ERRORS}
  }}
}}
"""

# Products

PRODUCTS_QUERY = f"""
query Products($first: Int!, $after: String) {{
  products(first: $first, after: $after) {{
    nodes {{
      id
      handle
      title
      descriptionHtml
      productType
      vendor
      status
      tags
      templateSuffix
      seo {{ title description }}
      options {{ name values }}
      media(first: 50) {{
        nodes {{
          alt
          mediaContentType
          ... on MediaImage {{ image {{ url altText }} }}
        }}
      }}
      variants(first: 100) {{
        nodes {{
          id
          title
          sku
          barcode
          price
          compareAtPrice
          taxable
          inventoryPolicy
          selectedOptions {{ name value }}
          inventoryItem {{
            id
            tracked
            requiresShipping
            measurement {{ weight {{ value unit }} }}
            inventoryLevels(first: 50) {{
              nodes {{
                location {{ id name }}
                quantities(names: ["available"]) {{ name quantity }}
              }}
            }}
          }}
          {METAFIELD_NODES}
        }}
      }}
      {METAFIELD_NODES}
    }}
    {PAGE_INFO}
  }}
}}
"""

PRODUCT_INDEX_QUERY = f"""
query ProductIndex($first: Int!, $after: String) {{
  products(first: $first, after: $after) {{
    nodes {{ id handle title }}
    {PAGE_INFO}
  }}
}}
"""

PRODUCT_DETAIL_QUERY = f"""
query ProductDetail($id: ID!) {{
  product(id: $id) {{
    id
    handle
    title
    mediaCount {{ count }}
    options {{ id name optionValues {{ name }} }}
    variants(first: 100) {{
      nodes {{
        id
        title
        sku
        selectedOptions {{ name value }}
        inventoryItem {{ id tracked }}
        {METAFIELD_NODES}
      }}
    }}
    {METAFIELD_NODES}
  }}
}}
"""

PRODUCT_CREATE = """
mutation ProductCreate($product: ProductCreateInput!) {
  productCreate(product: $product) {
    product { id handle title }
    userErrors { field message }
  }
}
"""

PRODUCT_UPDATE = """
mutation ProductUpdate($product: ProductUpdateInput!) {
  productUpdate(product: $product) {
    product { id handle title }
    userErrors { field message }
  }
}
"""

VARIANT_FIELDS = "id title sku selectedOptions { name value } inventoryItem { id tracked }"

VARIANTS_BULK_CREATE = f"""
mutation ProductVariantsBulkCreate($productId: ID!, $variants: [ProductVariantsBulkInput!]!, $strategy: ProductVariantsBulkCreateStrategy) {{
  productVariantsBulkCreate(productId: $productId, variants: $variants, strategy: $strategy) {{
    productVariants {{ {VARIANT_FIELDS} }}
    {USER_ERRORS}
  }}
}}
"""

VARIANTS_BULK_UPDATE = f"""
mutation ProductVariantsBulkUpdate($productId: ID!, $variants: [ProductVariantsBulkInput!]!, $allowPartialUpdates: Boolean) {{
  productVariantsBulkUpdate(productId: $productId, variants: $variants, allowPartialUpdates: $allowPartialUpdates) {{
    productVariants {{ {VARIANT_FIELDS} }}
    {USER_ERRORS}
  }}
}}
"""

PRODUCT_CREATE_MEDIA = """
mutation ProductCreateMedia($productId: ID!, $media: [CreateMediaInput!]!) {
  productCreateMedia(productId: $productId, media: $media) {
    media { alt mediaContentType status }
    mediaUserErrors { field message code }
  }
}
"""

PUBLICATIONS_QUERY = f"""
query Publications($first: Int!, $after: String) {{
  publications(first: $first, after: $after) {{
    nodes {{ id name }}
    {PAGE_INFO}
  }}
}}
"""

PUBLISHABLE_PUBLISH = """
mutation PublishablePublish($id: ID!, $input: [PublicationInput!]!) {
  publishablePublish(id: $id, input: $input) {
    userErrors { field message }
  }
}
"""

# Inventory

INVENTORY_LEVELS_QUERY = f"""
query InventoryLevels($id: ID!, $first: Int!, $after: String) {{
  inventoryItem(id: $id) {{
    id
    tracked
    inventoryLevels(first: $first, after: $after) {{
      nodes {{
        location {{ id name }}
        quantities(names: ["available"]) {{ name quantity }}
      }}
      {PAGE_INFO}
    }}
  }}
}}
"""

INVENTORY_ACTIVATE = """
mutation InventoryActivate($inventoryItemId: ID!, $locationId: ID!) {
  inventoryActivate(inventoryItemId: $inventoryItemId, locationId: $locationId) {
    inventoryLevel { id }
    userErrors { field message }
  }
}
"""

INVENTORY_SET_QUANTITIES = f"""
mutation InventorySetQuantities($input: InventorySetQuantitiesInput!) {{
  inventorySetQuantities(input: $input) {{
    inventoryAdjustmentGroup {{ id }}
    {USER_ERRORS}
  }}
}}
"""

# Collections

COLLECTIONS_QUERY = f"""
query Collections($first: Int!, $after: String) {{
  collections(first: $first, after: $after) {{
    nodes {{
      id
      handle
      title
      descriptionHtml
      sortOrder
      templateSuffix
      seo {{ title description }}
      image {{ url altText }}
      ruleSet {{
        appliedDisjunctively
        rules {{ column relation condition }}
      }}
      {METAFIELD_NODES}
    }}
    {PAGE_INFO}
  }}
}}
"""

COLLECTION_INDEX_QUERY = f"""
query CollectionIndex($first: Int!, $after: String) {{
  collections(first: $first, after: $after) {{
    nodes {{
      id
      handle
      title
      {METAFIELD_NODES}
    }}
    {PAGE_INFO}
  }}
}}
"""

COLLECTION_PRODUCTS_QUERY = f"""
query CollectionProducts($id: ID!, $first: Int!, $after: String) {{
  collection(id: $id) {{
    products(first: $first, after: $after) {{
      nodes {{ id }}
      {PAGE_INFO}
    }}
  }}
}}
"""

COLLECTION_CREATE = """
mutation CollectionCreate($input: CollectionInput!) {
  collectionCreate(input: $input) {
    collection { id handle title }
    userErrors { field message }
  }
}
"""

COLLECTION_UPDATE = """
mutation CollectionUpdate($input: CollectionInput!) {
  collectionUpdate(input: $input) {
    collection { id handle title }
    userErrors { field message }
  }
}
"""

COLLECTION_ADD_PRODUCTS = """
mutation CollectionAddProducts($id: ID!, $productIds: [ID!]!) {
  collectionAddProducts(id: $id, productIds: $productIds) {
    collection { id }
    userErrors { field message }
  }
}
"""

# Pages

PAGES_QUERY = f"""
query Pages($first: Int!, $after: String) {{
  pages(first: $first, after: $after) {{
    nodes {{
      id
      handle
      title
      body
      isPublished
      templateSuffix
      {METAFIELD_NODES}
    }}
    {PAGE_INFO}
  }}
}}
"""

PAGE_INDEX_QUERY = f"""
query PageIndex($first: Int!, $after: String) {{
  pages(first: $first, after: $after) {{
    nodes {{
      id
      handle
      title
      {METAFIELD_NODES}
    }}
    {PAGE_INFO}
  }}
}}
"""

PAGE_CREATE = f"""
mutation PageCreate($page: PageCreateInput!) {{
  pageCreate(page: $page) {{
    page {{ id handle title }}
    {USER_ERRORS}
  }}
}}
"""

PAGE_UPDATE = f"""
mutation PageUpdate($id: ID!, $page: PageUpdateInput!) {{
  pageUpdate(id: $id, page: $page) {{
    page {{ id handle title }}
    {USER_ERRORS}
  }}
}}
"""

# Navigation

MENUS_QUERY = f"""
query Menus($first: Int!, $after: String) {{
  menus(first: $first, after: $after) {{
    nodes {{
      id
      handle
      title
      isDefault
      items {{
        ...MenuItemFields
        items {{
          ...MenuItemFields
          items {{ ...MenuItemFields }}
        }}
      }}
    }}
    {PAGE_INFO}
  }}
}}

fragment MenuItemFields on MenuItem {{
  title
  type
  url
  resourceId
  tags
}}
"""

MENU_CREATE = f"""
mutation MenuCreate($title: String!, $handle: String!, $items: [MenuItemCreateInput!]!) {{
  menuCreate(title: $title, handle: $handle, items: $items) {{
    menu {{ id handle title }}
    {USER_ERRORS}
  }}
}}
"""

MENU_UPDATE = f"""
mutation MenuUpdate($id: ID!, $title: String!, $handle: String, $items: [MenuItemUpdateInput!]!) {{
  menuUpdate(id: $id, title: $title, handle: $handle, items: $items) {{
    menu {{ id handle title }}
    {USER_ERRORS}
  }}
}}
"""

# Markets

MARKET_REGIONS = """
conditions {
  regionsCondition {
    regions(first: 250) { nodes { ... on MarketRegionCountry { code } } }
  }
}
"""

MARKET_CATALOGS = "catalogs(first: 5) { nodes { id title status publication { id } priceList { currency } } }"

MARKETS_QUERY = f"""
query Markets($first: Int!, $after: String) {{
  markets(first: $first, after: $after) {{
    nodes {{
      id
      handle
      name
      status
      {MARKET_REGIONS}
      currencySettings {{
        baseCurrency {{ currencyCode }}
        localCurrencies
      }}
      {MARKET_CATALOGS}
      {METAFIELD_NODES}
    }}
    {PAGE_INFO}
  }}
}}
"""

MARKET_INDEX_QUERY = f"""
query MarketIndex($first: Int!, $after: String) {{
  markets(first: $first, after: $after) {{
    nodes {{
      id
      handle
      name
      {MARKET_CATALOGS}
      {METAFIELD_NODES}
    }}
    {PAGE_INFO}
  }}
}}
"""

MARKET_CREATE = f"""
mutation MarketCreate($input: MarketCreateInput!) {{
  marketCreate(input: $input) {{
    market {{ id handle name }}
    {USER_ERRORS}
  }}
}}
"""

MARKET_UPDATE = f"""
mutation MarketUpdate($id: ID!, $input: MarketUpdateInput!) {{
  marketUpdate(id: $id, input: $input) {{
    market {{ id handle name }}
    {USER_ERRORS}
  }}
}}
"""

PUBLICATION_PRODUCTS_QUERY = f"""
query PublicationProducts($id: ID!, $first: Int!, $after: String) {{
  publication(id: $id) {{
    products(first: $first, after: $after) {{
      nodes {{ id }}
      {PAGE_INFO}
    }}
  }}
}}
"""

CATALOG_CREATE = f"""
mutation CatalogCreate($input: CatalogCreateInput!) {{
  catalogCreate(input: $input) {{
    catalog {{ id title status }}
    {USER_ERRORS}
  }}
}}
"""

PUBLICATION_CREATE = """
mutation PublicationCreate($input: PublicationCreateInput!) {
  publicationCreate(input: $input) {
    publication { id }
    userErrors { field message }
  }
}
"""

PRICE_LIST_CREATE = """
mutation PriceListCreate($input: PriceListCreateInput!) {
  priceListCreate(input: $input) {
    priceList { id }
    userErrors { field message }
  }
}
"""

PUBLICATION_UPDATE = """
mutation PublicationUpdate($id: ID!, $input: PublicationUpdateInput!) {
  publicationUpdate(id: $id, input: $input) {
    publication { id }
    userErrors { field message }
  }
}
"""

# Search & Discovery

DISCOVERY_PRODUCTS_QUERY = f"""
query DiscoveryProducts($first: Int!, $after: String) {{
  products(first: $first, after: $after) {{
    nodes {{
      id
      handle
      title
      metafields(first: 50, namespace: "{DISCOVERY_NAMESPACE}") {{ nodes {{ namespace key type value }} }}
    }}
    {PAGE_INFO}
  }}
}}
"""

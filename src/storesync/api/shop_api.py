# src/api/shop_api.py
import asyncio
from dataclasses import dataclass, field
from typing import Dict, Any, Optional, List, AsyncIterator, Tuple
from storesync.api.queries import SHOP_QUERY
from storesync.api.shop_base import ShopBase, classify_errors, operation_name
from storesync.utils.exceptions import ShopAPIError

@dataclass
class Page:
    """One batch of a paginated read. cursor is the `after` value used to fetch it."""
    items: List[Dict[str, Any]] = field(default_factory=list)
    cursor: Optional[str] = None
    end_cursor: Optional[str] = None
    has_more: bool = False
    number: int = 1

def get_path(data: Optional[Dict[str, Any]], path: str) -> Any:
    """Walk a dotted path through nested dicts, returning None when a level is missing"""
    current = data
    for part in path.split('.'):
        if not isinstance(current, dict):
            return None
        current = current.get(part)
    return current

def nodes(connection: Optional[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Items of a GraphQL connection, whichever of nodes / edges it exposes"""
    if not connection:
        return []
    if connection.get('nodes') is not None:
        return [node for node in connection['nodes'] if node]
    return [edge['node'] for edge in connection.get('edges') or [] if edge and edge.get('node')]

def format_user_errors(user_errors: Optional[List[Dict[str, Any]]]) -> str:
    parts = []
    for error in user_errors or []:
        field_path = error.get('field')
        if field_path:
            parts.append(f"{'.'.join(str(p) for p in field_path)}: {error.get('message')}")
        else:
            parts.append(str(error.get('message')))
    return ', '.join(parts)

def index_user_errors(
    user_errors: Optional[List[Dict[str, Any]]],
    list_field: str
) -> Tuple[Dict[int, List[str]], List[str]]:
    """
    Attribute bulk mutation user errors to input positions.

    A field path like ['variants', '2', 'price'] belongs to item 2 of the
    'variants' input. Errors without such a path are returned separately.
    """
    by_index: Dict[int, List[str]] = {}
    general: List[str] = []
    for error in user_errors or []:
        path = [str(part) for part in (error.get('field') or [])]
        index = None
        if list_field in path:
            position = path.index(list_field)
            if position + 1 < len(path) and path[position + 1].isdigit():
                index = int(path[position + 1])
        if index is None:
            general.append(str(error.get('message')))
        else:
            by_index.setdefault(index, []).append(str(error.get('message')))
    return by_index, general

class ShopAPI(ShopBase):
    def __init__(self, *args, page_pause: float = 0.0, **kwargs):
        super().__init__(*args, **kwargs)
        self.page_pause = page_pause

    async def execute(
        self,
        descriptor: str,
        variables: Optional[Dict[str, Any]] = None,
        root: Optional[str] = None
    ) -> Any:
        """Run a document and return its data (or data[root]); GraphQL errors raise ShopAPIError"""
        response = await self.query(descriptor, variables)
        errors = response.get('errors') or []
        if errors:
            messages = ', '.join(str(e.get('message', e)) for e in errors if e)
            raise ShopAPIError(
                f"GraphQL errors: {messages}",
                kind=classify_errors(errors),
                errors=errors,
                context={'operation': operation_name(descriptor), 'shop': self.domain}
            )
        data = response.get('data') or {}
        if root:
            return data.get(root)
        return data

    async def paginate(
        self,
        descriptor: str,
        path: str,
        variables: Optional[Dict[str, Any]] = None,
        page_size: int = 50
    ) -> AsyncIterator[Page]:
        """
        Walk a cursor-paginated connection, yielding one Page per request.

        The first request is sent with after=None; each following request uses the
        endCursor of the previous page. Errors propagate to the caller unretried.
        """
        cursor = None
        number = 0
        while True:
            number += 1
            params = dict(variables or {})
            params.update({'first': page_size, 'after': cursor})

            data = await self.execute(descriptor, params)
            connection = get_path(data, path) or {}
            page_info = connection.get('pageInfo') or {}
            end_cursor = page_info.get('endCursor')
            has_more = bool(page_info.get('hasNextPage')) and bool(end_cursor)

            yield Page(
                items=nodes(connection),
                cursor=cursor,
                end_cursor=end_cursor,
                has_more=has_more,
                number=number
            )

            if not has_more:
                break

            cursor = end_cursor
            if self.page_pause:
                await asyncio.sleep(self.page_pause)

    async def fetch_all(
        self,
        descriptor: str,
        path: str,
        variables: Optional[Dict[str, Any]] = None,
        page_size: int = 50
    ) -> List[Dict[str, Any]]:
        """Accumulate every page of a connection, in page order"""
        items: List[Dict[str, Any]] = []
        async for page in self.paginate(descriptor, path, variables, page_size):
            items.extend(page.items)
        return items

    async def mutate(
        self,
        descriptor: str,
        variables: Dict[str, Any],
        root: str,
        errors_key: str = 'userErrors'
    ) -> Dict[str, Any]:
        """
        Run a mutation and return its payload with user errors normalized under
        'userErrors'. User errors are data, not exceptions: bulk callers attribute
        them per item.
        """
        payload = await self.execute(descriptor, variables, root) or {}
        payload['userErrors'] = payload.get(errors_key) or []
        return payload

    async def check_connection(self) -> Dict[str, Any]:
        return await self.execute(SHOP_QUERY, root='shop')

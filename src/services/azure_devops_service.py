import requests
import base64
import logging
from typing import List, Dict, Any, Optional, Sequence

from services.models import WorkItem
from services.settings import MAX_WORK_ITEMS_LIMIT

logger = logging.getLogger(__name__)

class AzureDevOpsAuthenticationError(Exception):
    """Custom exception for Azure DevOps authentication errors"""
    pass

class AzureDevOpsService:
    def __init__(self, pat: str, organization_url: str, timeout: float = 30.0,
                 max_batch_size: int = MAX_WORK_ITEMS_LIMIT):
        self.organization_url = organization_url.rstrip("/")
        self.base_url = f"{self.organization_url}/_apis"
        # Ensure PAT is properly encoded
        encoded_pat = self._encode_pat(pat)
        self.headers = {
            "Authorization": f"Basic {encoded_pat}",
            "Content-Type": "application/json"
        }
        self.api_version = "7.0"
        self.timeout = timeout
        self.max_batch_size = max_batch_size

    def _encode_pat(self, pat: str) -> str:
        """Encode the Personal Access Token for use in the Authorization header"""
        # Azure DevOps expects the PAT to be encoded as "username:pat"
        # where username can be empty
        token = f":{pat}"
        encoded = base64.b64encode(token.encode()).decode('utf-8')
        return encoded

    def _check_response(self, response: requests.Response, description: str) -> None:
        """Raise the appropriate error for a failed Azure DevOps response"""
        # An invalid PAT yields 401, or 203 with the sign-in page
        if response.status_code in (401, 203):
            logger.error("Azure DevOps authentication failed - Invalid PAT token")
            raise AzureDevOpsAuthenticationError("Invalid Azure DevOps PAT token. Please check your credentials.")

        if not response.ok:
            error_msg = f"{description} failed: {response.status_code} - {response.text}"
            logger.error(error_msg)
            raise requests.exceptions.HTTPError(error_msg, response=response)

    def _parse_json(self, response: requests.Response) -> Dict[str, Any]:
        try:
            return response.json()
        except ValueError as e:
            logger.error(f"Failed to parse Azure DevOps response: {response.text}")
            raise requests.exceptions.HTTPError(
                "Failed to parse Azure DevOps response. Please check your credentials and try again.",
                response=response
            ) from e

    def _get_single_work_item(self, work_item_id: int, params: Dict[str, str]) -> Optional[WorkItem]:
        url = f"{self.base_url}/wit/workitems/{work_item_id}"
        params = {**params, "api-version": self.api_version}
        logger.debug(f"GET {url} params={params}")

        response = requests.get(url, headers=self.headers, params=params, timeout=self.timeout)

        if response.status_code == 404:
            logger.info(f"Work item {work_item_id} not found")
            return None

        self._check_response(response, f"Fetching work item {work_item_id}")
        return WorkItem.from_api(self._parse_json(response))

    def get_work_item(self, work_item_id: int, fields: Sequence[str]) -> Optional[WorkItem]:
        """
        Fetch a single work item restricted to the given fields

        Returns:
            The work item, or None when it does not exist
        """
        return self._get_single_work_item(work_item_id, {"fields": ",".join(fields)})

    def get_work_item_with_relations(self, work_item_id: int) -> Optional[WorkItem]:
        """
        Fetch a single work item with all fields and its relations expanded

        Returns:
            The work item, or None when it does not exist
        """
        return self._get_single_work_item(work_item_id, {"$expand": "relations"})

    def get_work_items_batch(self, work_item_ids: Sequence[int]) -> List[WorkItem]:
        """
        Fetch up to max_batch_size work items in one call, relations expanded

        Ids that cannot be resolved are omitted from the result rather than
        failing the call.

        Args:
            work_item_ids: Ids to fetch; callers chunk larger sets themselves

        Returns:
            The resolved work items in request order
        """
        if not work_item_ids:
            return []
        if len(work_item_ids) > self.max_batch_size:
            raise ValueError(
                f"Cannot fetch {len(work_item_ids)} work items in one batch, the limit is {self.max_batch_size}"
            )

        url = f"{self.base_url}/wit/workitemsbatch?api-version={self.api_version}"
        payload = {
            "ids": list(work_item_ids),
            "$expand": "Relations",
            "errorPolicy": "Omit"
        }
        logger.info(f"POST {url} for {len(work_item_ids)} work items")

        response = requests.post(url, headers=self.headers, json=payload, timeout=self.timeout)
        self._check_response(response, "Work items batch request")

        batch_data = self._parse_json(response)
        # The omit policy returns null in place of each unresolvable id
        values = [item for item in batch_data.get("value", []) if item is not None]

        omitted = len(work_item_ids) - len(values)
        if omitted:
            logger.warning(f"{omitted} of {len(work_item_ids)} work items could not be resolved and were omitted")

        return [WorkItem.from_api(item) for item in values]

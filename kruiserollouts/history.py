"""Record each rollout as a RolloutHistory object once it has completed."""

from __future__ import annotations

import copy
import logging
from dataclasses import dataclass
from typing import Any, Mapping

from .client import NotFoundError, Selector
from .constants import ROLLOUT_BATCH_ID_LABEL
from .constants import ROLLOUT_ID_LABEL as POD_ROLLOUT_ID_LABEL
from .history_finder import ROLLOUT_ID_LABEL, ROLLOUT_NAME_LABEL, HistoryFinder, rand_all_string

logger = logging.getLogger(__name__)

ROLLOUT_API_VERSION = "rollouts.kruise.io/v1alpha1"
ROLLOUT_KIND = "Rollout"
ROLLOUT_HISTORY_KIND = "RolloutHistory"

ROLLOUT_PHASE_PROGRESSING = "Progressing"
ROLLOUT_PHASE_HEALTHY = "Healthy"
PHASE_COMPLETED = "completed"

SERVICE_API_VERSION = "v1"
INGRESS_API_VERSION = "networking.k8s.io/v1"
HTTP_ROUTE_API_VERSION = "gateway.networking.k8s.io/v1alpha2"


@dataclass(frozen=True)
class Request:
    """The namespace and name of a rollout to reconcile."""

    namespace: str
    name: str


def _metadata(obj: Mapping[str, Any]) -> dict[str, Any]:
    return obj.get("metadata") or {}


def _observed_rollout_id(rollout: Mapping[str, Any]) -> str:
    canary_status = (rollout.get("status") or {}).get("canaryStatus") or {}
    return canary_status.get("observedRolloutID") or ""


def _canary(rollout: Mapping[str, Any]) -> Mapping[str, Any]:
    return ((rollout.get("spec") or {}).get("strategy") or {}).get("canary") or {}


def _first_traffic_routing(rollout: Mapping[str, Any]) -> Mapping[str, Any]:
    routings = _canary(rollout).get("trafficRoutings") or []
    if not routings:
        raise ValueError(f"rollout {_metadata(rollout).get('name', '')!r} has no traffic routing")
    return routings[0] or {}


def _workload_ref(rollout: Mapping[str, Any]) -> Mapping[str, Any] | None:
    return ((rollout.get("spec") or {}).get("objectRef") or {}).get("workloadRef")


class RolloutHistoryReconciler:
    """Create a RolloutHistory per rollout ID and complete it when the rollout is healthy."""

    def __init__(self, client: Any, finder: HistoryFinder | None = None) -> None:
        self.client = client
        self.finder = finder if finder is not None else HistoryFinder(client)

    def reconcile(self, request: Request) -> None:
        """Bring the rollout's history record up to date with the rollout."""
        try:
            rollout = self.client.get(ROLLOUT_API_VERSION, ROLLOUT_KIND, request.namespace, request.name)
        except NotFoundError:
            return
        namespace = _metadata(rollout).get("namespace", "")
        name = _metadata(rollout).get("name", "")
        logger.info("Begin to reconcile Rollout %s/%s", namespace, name)

        rollout_id = _observed_rollout_id(rollout)
        if not rollout_id:
            return

        try:
            history = self._get_history_for_rollout(rollout)
        except Exception as exc:
            logger.error("get rollout(%s/%s) rolloutHistory(%s=%s) failed: %s",
                         namespace, name, ROLLOUT_ID_LABEL, rollout_id, exc)
            raise

        if history is None:
            # Only a progressing rollout starts a record, so one rollout yields one history.
            if (rollout.get("status") or {}).get("phase") != ROLLOUT_PHASE_PROGRESSING:
                return
            try:
                self._create_history(rollout)
            except Exception as exc:
                logger.error("create rollout(%s/%s) rolloutHistory(%s=%s) failed: %s",
                             namespace, name, ROLLOUT_ID_LABEL, rollout_id, exc)
                raise
            logger.info("create rollout(%s/%s) rolloutHistory success", namespace, name)
            return

        history_name = _metadata(history).get("name", "")
        logger.info("get rollout(%s/%s) rolloutHistory(%s) success", namespace, name, history_name)

        if (history.get("status") or {}).get("phase") != PHASE_COMPLETED:
            try:
                self._update_when_completed(rollout, history)
            except Exception as exc:
                logger.error("update rollout(%s/%s) rolloutHistory(%s=%s) failed: %s",
                             namespace, name, ROLLOUT_ID_LABEL, rollout_id, exc)
                raise
            logger.info("update rollout(%s/%s) rolloutHistory(%s) success", namespace, name, history_name)

    def _get_history_for_rollout(self, rollout: Mapping[str, Any]) -> dict[str, Any] | None:
        metadata = _metadata(rollout)
        selector = Selector.parse(
            f"{ROLLOUT_ID_LABEL}={_observed_rollout_id(rollout)},{ROLLOUT_NAME_LABEL}={metadata.get('name', '')}"
        )
        items = self.client.list(
            ROLLOUT_API_VERSION, ROLLOUT_HISTORY_KIND, metadata.get("namespace", ""), selector
        )
        return items[0] if items else None

    def _create_history(self, rollout: Mapping[str, Any]) -> dict[str, Any]:
        metadata = _metadata(rollout)
        name = metadata.get("name", "")
        history = {
            "apiVersion": ROLLOUT_API_VERSION,
            "kind": ROLLOUT_HISTORY_KIND,
            "metadata": {
                "name": f"{name}-{rand_all_string(6)}",
                "namespace": metadata.get("namespace", ""),
                "labels": {
                    ROLLOUT_ID_LABEL: _observed_rollout_id(rollout),
                    ROLLOUT_NAME_LABEL: name,
                },
            },
        }
        return self.client.create(history)

    def _history_spec(self, rollout: Mapping[str, Any]) -> dict[str, Any]:
        namespace = _metadata(rollout).get("namespace", "")
        workload = self.finder.get_workload_info_for_ref(namespace, _workload_ref(rollout))
        if workload is None:
            raise LookupError("workload referenced by the rollout not found")
        return {
            "rollout": {
                "name": _metadata(rollout).get("name", ""),
                "rolloutID": _observed_rollout_id(rollout),
                "data": copy.deepcopy(rollout.get("spec") or {}),
            },
            "workload": workload,
            "service": self._service_info(rollout),
            "trafficRouting": self._traffic_routing_info(rollout),
        }

    def _service_info(self, rollout: Mapping[str, Any]) -> dict[str, Any]:
        namespace = _metadata(rollout).get("namespace", "")
        service_name = _first_traffic_routing(rollout).get("service", "")
        try:
            service = self.client.get(SERVICE_API_VERSION, "Service", namespace, service_name)
        except NotFoundError as exc:
            raise LookupError("service not find") from exc
        return {"name": _metadata(service).get("name", ""), "data": copy.deepcopy(service.get("spec") or {})}

    def _traffic_routing_info(self, rollout: Mapping[str, Any]) -> dict[str, Any]:
        routing = _first_traffic_routing(rollout)
        info: dict[str, Any] = {}
        gateway = routing.get("gateway")
        if gateway is not None and gateway.get("httpRouteName") is not None:
            info["httpRoute"] = self._http_route_info(rollout, gateway["httpRouteName"])
        ingress = routing.get("ingress")
        if ingress is not None and ingress.get("name"):
            info["ingress"] = self._ingress_info(rollout, ingress["name"])
        return info

    def _http_route_info(self, rollout: Mapping[str, Any], route_name: str) -> dict[str, Any]:
        namespace = _metadata(rollout).get("namespace", "")
        try:
            route = self.client.get(HTTP_ROUTE_API_VERSION, "HTTPRoute", namespace, route_name)
        except NotFoundError as exc:
            raise LookupError(f"initGateway error: HTTPRoute {route_name} not find") from exc
        return {"name": _metadata(route).get("name", ""), "data": copy.deepcopy(route.get("spec") or {})}

    def _ingress_info(self, rollout: Mapping[str, Any], ingress_name: str) -> dict[str, Any]:
        namespace = _metadata(rollout).get("namespace", "")
        try:
            ingress = self.client.get(INGRESS_API_VERSION, "Ingress", namespace, ingress_name)
        except NotFoundError as exc:
            raise LookupError(f"initIngressInfo error: Ingress {ingress_name} not find") from exc
        return {"name": ingress_name, "data": copy.deepcopy(ingress.get("spec") or {})}

    def _update_when_completed(self, rollout: Mapping[str, Any], history: dict[str, Any]) -> None:
        if (rollout.get("status") or {}).get("phase") != ROLLOUT_PHASE_HEALTHY:
            return
        spec = self._history_spec(rollout)
        recorded_id = ((history.get("spec") or {}).get("rollout") or {}).get("rolloutID", "")
        if recorded_id != spec["rollout"]["rolloutID"]:
            history["spec"] = spec
            self.client.update(history)
            return
        status = history.setdefault("status", {})
        status["phase"] = PHASE_COMPLETED
        status["canarySteps"] = self._canary_steps(rollout, history)
        self.client.update_status(history)

    def _canary_steps(self, rollout: Mapping[str, Any], history: Mapping[str, Any]) -> list[dict[str, Any]]:
        namespace = _metadata(rollout).get("namespace", "")
        rollout_id = ((history.get("spec") or {}).get("rollout") or {}).get("rolloutID", "")
        steps: list[dict[str, Any]] = []
        for _ in _canary(rollout).get("steps") or []:
            index = len(steps) + 1
            workload_selector = self.finder.get_label_selector_for_ref(namespace, _workload_ref(rollout))
            selector = Selector.from_label_selector(workload_selector)
            extra = Selector.parse(
                f"{ROLLOUT_BATCH_ID_LABEL}={index},{POD_ROLLOUT_ID_LABEL}={rollout_id},{selector}"
            )
            pods = self.client.list("v1", "Pod", namespace, extra)
            step: dict[str, Any] = {"canaryStepIndex": index}
            released = [
                {
                    "name": _metadata(pod).get("name", ""),
                    "ip": (pod.get("status") or {}).get("podIP", ""),
                    "nodeName": (pod.get("spec") or {}).get("nodeName", ""),
                }
                for pod in pods
                if not _metadata(pod).get("deletionTimestamp")
            ]
            if released:
                step["pods"] = released
            steps.append(step)
        return steps
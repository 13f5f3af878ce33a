"""Error taxonomy shared by the hierarchy builder, the chart editor and the stores."""

from __future__ import annotations


class OrgChartError(Exception):
    pass


class ValidationError(OrgChartError):
    pass


class NodeNotFound(OrgChartError):
    def __init__(self, node_id: str) -> None:
        super().__init__(f"Node '{node_id}' does not exist")
        self.node_id = node_id


class DuplicateId(OrgChartError):
    def __init__(self, node_id: str) -> None:
        super().__init__(f"Node id '{node_id}' already exists")
        self.node_id = node_id


class CycleDetected(OrgChartError):
    def __init__(self, node_id: str, parent_id: str) -> None:
        super().__init__(f"Placing '{node_id}' under '{parent_id}' would create a cycle")
        self.node_id = node_id
        self.parent_id = parent_id


class PersistenceError(OrgChartError):
    pass


class ChartNotFound(PersistenceError):
    def __init__(self, chart_id: str) -> None:
        super().__init__(f"Chart '{chart_id}' not found")
        self.chart_id = chart_id


class SourceDataError(OrgChartError):
    pass


class ChartAccessDenied(OrgChartError):
    def __init__(self, chart_id: str) -> None:
        super().__init__(f"Chart '{chart_id}' can only be changed by its owner")
        self.chart_id = chart_id


class SessionNotOpen(OrgChartError):
    def __init__(self, chart_id: str) -> None:
        super().__init__(f"No editing session is open for chart '{chart_id}'")
        self.chart_id = chart_id

"""
Read-only DQoS tools exposed over MCP.

TOOLS holds the schemas advertised by tools/list. TOOL_ENDPOINTS maps each
tool to the DQoS API path it proxies to; tool arguments are forwarded as query
parameters unchanged.
"""

from typing import Any, Dict, List

NETWORKS = ["2g", "3g", "4g", "5g"]

TOOLS: List[Dict[str, Any]] = [
    {
        "name": "get_locations",
        "description": "Get locations (provinces, districts, etc.) without geographic polygons",
        "inputSchema": {
            "type": "object",
            "properties": {
                "level": {
                    "type": "number",
                    "description": "Hierarchy level: 0=Country, 1=Province, 2=District"
                },
                "search": {"type": "string", "description": "Text search"},
                "with_stats": {"type": "boolean", "description": "Include statistics"}
            }
        }
    },
    {
        "name": "get_kpi_data",
        "description": "Get quality of service KPI data",
        "inputSchema": {
            "type": "object",
            "properties": {
                "location_id": {"type": "number"},
                "network": {"type": "string", "enum": NETWORKS},
                "latest_only": {"type": "boolean"}
            }
        }
    },
    {
        "name": "get_scoring",
        "description": "Get operator scores",
        "inputSchema": {
            "type": "object",
            "properties": {
                "network": {"type": "string", "enum": NETWORKS},
                "with_rankings": {"type": "boolean"}
            }
        }
    },
    {
        "name": "get_operators",
        "description": "List telecom operators",
        "inputSchema": {
            "type": "object",
            "properties": {
                "type": {"type": "string", "enum": ["mobile", "fixed", "isp"]},
                "with_stats": {"type": "boolean"}
            }
        }
    },
    {
        "name": "get_coverage",
        "description": "Get coverage statistics",
        "inputSchema": {
            "type": "object",
            "properties": {
                "location_id": {"type": "number"},
                "network": {"type": "string", "enum": NETWORKS}
            }
        }
    },
    {
        "name": "get_analytics",
        "description": "Get global analytics",
        "inputSchema": {
            "type": "object",
            "properties": {
                "scope": {"type": "string", "enum": ["global", "operator", "location", "network"]},
                "period": {"type": "string", "enum": ["last_7_days", "last_30_days", "last_3_months"]}
            }
        }
    },
]

TOOL_ENDPOINTS: Dict[str, str] = {
    "get_locations": "locations",
    "get_kpi_data": "kpi-data",
    "get_scoring": "scoring",
    "get_operators": "operators",
    "get_coverage": "coverage",
    "get_analytics": "analytics",
}


def get_endpoint_for_tool(tool_name: str) -> str:
    """Downstream path for a tool; unknown names are passed through as the path."""
    return TOOL_ENDPOINTS.get(tool_name, tool_name)


def get_tool(tool_name: str):
    for tool in TOOLS:
        if tool["name"] == tool_name:
            return tool
    return None

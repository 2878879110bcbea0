"""
============================================================================
NETGUARD MONITOR - BOT COMMAND TEXTS
============================================================================
Parsing of inbound command text and formatting of every bot reply.
All functions here are pure; sending is done by the gateway.
============================================================================
"""

from datetime import datetime
from typing import Optional

from netguard.config.constants import BotCommands, MessageTemplates, StatusIcons
from netguard.monitoring.models import AnalysisResult, AnalysisSnapshot, NodeHealth, NodeSnapshot
from netguard.utils.helpers import StringHelper, TimeHelper


def normalize_command(text: Optional[str]) -> Optional[BotCommands]:
    """
    Map message text to a known command.

    Text is trimmed and lower-cased; a ``@botname`` suffix and any
    arguments are ignored.

    Returns:
        The command, or None for anything else
    """
    if not text:
        return None

    text = text.strip().lower()
    if not text.startswith("/"):
        return None

    head = text.split()[0][1:]
    name = head.split("@", 1)[0]
    try:
        return BotCommands(name)
    except ValueError:
        return None


def help_text() -> str:
    lines = ["🛡️ *NetGuard Bot Commands*", ""]
    for command in BotCommands.listed_commands():
        lines.append(
            f"{BotCommands.get_emoji(command)} /{command.value} - "
            f"{BotCommands.get_description(command)}"
        )
    return "\n".join(lines)


def status_icon(health: NodeHealth) -> str:
    if health == NodeHealth.CRITICAL:
        return StatusIcons.CRITICAL
    if health == NodeHealth.WARNING:
        return StatusIcons.WARNING
    return StatusIcons.HEALTHY


def format_scan_summary(result: AnalysisResult) -> str:
    """
    Reply to /scan.

    The header icon reflects the worst node state.
    """
    critical = len(result.critical_nodes)
    warning = len(result.warning_nodes)
    icon = "🚨" if critical else "⚠️" if warning else "✅"

    summary = f"*Global Status:* {result.global_analysis}\n\n"
    if critical:
        summary += (
            f"🔴 *Critical Issues Detected on {critical} nodes.*\n"
            f"Use /nodes to view details."
        )
    elif warning:
        summary += f"⚠️ *Warnings on {warning} nodes.*\nUse /nodes to view details."
    else:
        summary += "✨ All nodes are operating normally."

    return f"{icon} *Scan Complete*\n\n{summary}"


def format_status(snapshot: AnalysisSnapshot) -> str:
    """Reply to /status from the cached snapshot only."""
    result = snapshot.result
    if result is None:
        return MessageTemplates.NO_STATUS_DATA

    critical = len(result.critical_nodes)
    updated = (
        datetime.fromtimestamp(snapshot.updated_at).strftime("%H:%M:%S")
        if snapshot.updated_at
        else "unknown"
    )
    return (
        f"📊 *System Status Report*\n\n"
        f"⚡ *Overall Health*: {'Critical' if critical else 'Nominal'}\n"
        f"🟢 Active Nodes: `{result.active_nodes}`\n"
        f"👥 Total Users: `{result.total_users}`\n"
        f"🔴 Critical Issues: `{critical}`\n\n"
        f"_Last Updated: {updated} ({TimeHelper.get_time_ago(snapshot.updated_at)})_"
    )


def _short_speed(kbps: int) -> str:
    if kbps > 1000:
        return f"{kbps / 1000:.1f}Mbps"
    return f"{round(kbps)}Kbps"


def _node_line(node: NodeSnapshot) -> str:
    line = (
        f"\n{status_icon(node.status)} *{StringHelper.clean_node_name(node.name)}*\n"
        f"   └ 👥 {node.online_users}  |  ⚡ {_short_speed(node.current_speed_kbps)}"
    )
    if node.status == NodeHealth.CRITICAL:
        line += f"\n   ⚠️ _{StringHelper.clean_node_name(node.message)}_"
    return line


def format_nodes(snapshot: AnalysisSnapshot, limit: int = 15) -> str:
    """
    Reply to /nodes.

    Nodes are sorted by severity, then by user count, both descending.
    """
    result = snapshot.result
    if result is None or not result.nodes:
        return MessageTemplates.NO_NODE_DATA

    ordered = sorted(
        result.nodes,
        key=lambda n: (n.status.severity, n.online_users),
        reverse=True,
    )

    message = "🌐 *Node Connections*\n"
    message += "".join(_node_line(node) for node in ordered[:limit])
    if len(ordered) > limit:
        message += f"\n\n_...and {len(ordered) - limit} more nodes_"
    return message

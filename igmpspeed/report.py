import json
from typing import Optional

from igmpspeed.schemas import ResultsSnapshot


def _fmt(v: float) -> str:
    return str(int(v)) if float(v).is_integer() else f"{v:.1f}"


def render_json(snapshot: ResultsSnapshot) -> str:
    return json.dumps(snapshot.to_dict(), indent=2)


def render_text(snapshot: ResultsSnapshot, include_leave: bool = False, quiet: bool = False,
                groups: Optional[list[str]] = None) -> str:
    lines = []
    if not quiet:
        lines.append("JOIN times:")
        for g in groups or list(snapshot.join_time):
            v = snapshot.join_time.get(g)
            lines.append(f"  {g}: --" if v is None else f"  {g}: {v}")
        if include_leave:
            lines.append("")
            lines.append("LEAVE times:")
            for g in groups or list(snapshot.leave_time):
                v = snapshot.leave_time.get(g)
                lines.append(f"  {g}: --" if not v else f"  {g}: {v}")
        lines.append("")

    if snapshot.has_results:
        lines.append(f"Best JOIN performance: {_fmt(snapshot.fastest_join)}")
        lines.append(f"Average JOIN performance: {_fmt(snapshot.average_join)}")
        lines.append(f"Worst JOIN performance: {_fmt(snapshot.slowest_join)}")
        if include_leave:
            lines.append("")
            lines.append(f"Best LEAVE performance: {_fmt(snapshot.fastest_leave)}")
            lines.append(f"Average LEAVE performance: {_fmt(snapshot.average_leave)}")
            lines.append(f"Worst LEAVE performance: {_fmt(snapshot.slowest_leave)}")
        lines.append("")
        lines.append("All times expressed in usecs")
    else:
        lines.append("No packets received on any expected group.")
    return "\n".join(lines)

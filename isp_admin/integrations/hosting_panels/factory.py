from isp_admin.core.exceptions import UnsupportedProviderError
from isp_admin.domain.interfaces import IHostingPanel

from .cpanel import CpanelPanel
from .plesk import PleskPanel
from .virtualmin import VirtualminPanel

SUPPORTED_PANELS = ("cpanel", "plesk", "virtualmin")
KNOWN_UNSUPPORTED_PANELS = ("directadmin", "ispconfig", "cyberpanel", "cloudpanel")


def create_hosting_panel(panel_type: str, server_control_panel) -> IHostingPanel:
    """Build a panel client from a ``ServerControlPanel`` row.

    Raises:
        UnsupportedProviderError: For panel types without a client
    """
    code = (panel_type or "").strip().lower()
    common = {
        "port": server_control_panel.port,
        "use_https": server_control_panel.use_https,
        "verify_ssl": server_control_panel.verify_ssl,
    }

    if code == "cpanel":
        return CpanelPanel(
            server_control_panel.api_url,
            username=server_control_panel.username,
            api_token=server_control_panel.api_token or server_control_panel.api_key,
            **common,
        )
    if code == "plesk":
        return PleskPanel(
            server_control_panel.api_url,
            api_key=server_control_panel.api_key,
            username=server_control_panel.username,
            password=server_control_panel.password,
            **common,
        )
    if code == "virtualmin":
        return VirtualminPanel(
            server_control_panel.api_url,
            username=server_control_panel.username,
            password=server_control_panel.password,
            **common,
        )
    raise UnsupportedProviderError("control panel", panel_type)

from isp_admin.core.exceptions import UnsupportedProviderError
from isp_admin.domain.interfaces import IDomainRegistrar

from .namecheap import NamecheapRegistrar
from .sandbox import SandboxRegistrar

SUPPORTED_REGISTRARS = ("sandbox", "namecheap")


def create_registrar_client(registrar) -> IDomainRegistrar:
    """Build a registrar client from a ``Registrar`` row, keyed on its code.

    Raises:
        UnsupportedProviderError: For registrar codes without a client
    """
    code = (registrar.code or "").strip().lower()
    if code == "sandbox":
        return SandboxRegistrar()
    if code == "namecheap":
        return NamecheapRegistrar(
            api_user=registrar.api_user,
            api_key=registrar.api_key,
            client_ip=registrar.client_ip,
            use_sandbox=registrar.use_sandbox,
            api_url=registrar.api_url or None,
        )
    raise UnsupportedProviderError("registrar", registrar.code)

"""Directory user scripts (Microsoft Graph).

Functions:
    generate_password(length)                          -> str
    get_default_domain(graph)                          -> str
    create_user(graph, display_name, mail_nickname, domain, ...)  -> dict
    create_users_from_csv(graph, path, domain)         -> list[dict]
    list_users(graph, prefix)                          -> list[dict]
    delete_user(graph, user)                           -> None
"""

import csv
import logging
import re
import secrets
import string
from pathlib import Path

from azlab.client import AzureClientError, GraphClient

_SYMBOLS = "!@#$%^&*-_=+?"
_CLASSES = (string.ascii_lowercase, string.ascii_uppercase, string.digits, _SYMBOLS)
_NICKNAME_RE = re.compile(r"^[A-Za-z0-9._-]{1,64}$")

_USER_FIELDS = "id,displayName,userPrincipalName,accountEnabled,createdDateTime"

logger = logging.getLogger(__name__)


def generate_password(length: int = 16) -> str:
    """Random password with at least one lowercase, uppercase, digit and symbol."""
    if length < len(_CLASSES):
        raise ValueError(f"Password length must be at least {len(_CLASSES)}.")
    alphabet = "".join(_CLASSES)
    chars = [secrets.choice(cls) for cls in _CLASSES]
    chars += [secrets.choice(alphabet) for _ in range(length - len(chars))]
    secrets.SystemRandom().shuffle(chars)
    return "".join(chars)


def get_default_domain(graph: GraphClient) -> str:
    """Return the tenant's default verified domain (e.g. ``contoso.onmicrosoft.com``)."""
    domains = graph.list("/domains")
    for domain in domains:
        if domain.get("isDefault"):
            return domain["id"]
    for domain in domains:
        if domain.get("isVerified"):
            return domain["id"]
    raise AzureClientError("No verified domain found in the tenant.")


def create_user(
    graph: GraphClient,
    display_name: str,
    mail_nickname: str,
    domain: str,
    password: str | None = None,
    force_change: bool = True,
) -> dict:
    """Create an enabled member user; the initial password is returned once."""
    if not _NICKNAME_RE.match(mail_nickname):
        raise ValueError(f"Invalid mail nickname '{mail_nickname}'.")
    password = password or generate_password()
    upn = f"{mail_nickname}@{domain}"
    body = {
        "accountEnabled": True,
        "displayName": display_name,
        "mailNickname": mail_nickname,
        "userPrincipalName": upn,
        "passwordProfile": {
            "forceChangePasswordNextSignIn": force_change,
            "password": password,
        },
    }
    user = graph.post("/users", body)
    logger.info("Created user '%s' (%s)", upn, user.get("id"))
    return {
        "id": user.get("id"),
        "display_name": display_name,
        "user_principal_name": upn,
        "password": password,
    }


def create_users_from_csv(graph: GraphClient, path: str, domain: str) -> list[dict]:
    """Create one user per CSV row (``display_name,mail_nickname[,password]``).

    A failing row is recorded with ``status="failed"`` and does not stop the
    rest of the batch.
    """
    file = Path(path)
    if not file.exists():
        raise ValueError(f"CSV file not found: '{path}'")

    with file.open(newline="", encoding="utf-8-sig") as f:
        reader = csv.DictReader(f)
        missing = {"display_name", "mail_nickname"} - set(reader.fieldnames or [])
        if missing:
            raise ValueError(f"CSV '{path}' is missing column(s): {', '.join(sorted(missing))}")
        rows = list(reader)

    results: list[dict] = []
    for row in rows:
        nickname = (row.get("mail_nickname") or "").strip()
        try:
            user = create_user(graph, (row.get("display_name") or "").strip(), nickname,
                               domain, password=(row.get("password") or "").strip() or None)
            results.append({**user, "status": "created", "error": None})
        except (AzureClientError, ValueError) as exc:
            logger.warning("Could not create user '%s': %s", nickname, exc)
            results.append({
                "id": None,
                "display_name": row.get("display_name"),
                "user_principal_name": f"{nickname}@{domain}",
                "password": None,
                "status": "failed",
                "error": str(exc),
            })
    return results


def list_users(graph: GraphClient, prefix: str | None = None) -> list[dict]:
    params = {"$select": _USER_FIELDS}
    if prefix:
        escaped = prefix.replace("'", "''")
        params["$filter"] = f"startswith(displayName,'{escaped}')"
    return [
        {
            "id": u.get("id"),
            "display_name": u.get("displayName"),
            "user_principal_name": u.get("userPrincipalName"),
            "enabled": u.get("accountEnabled"),
            "created": u.get("createdDateTime"),
        }
        for u in graph.list("/users", params)
    ]


def delete_user(graph: GraphClient, user: str) -> None:
    """Delete by object id or user principal name (soft-deleted for 30 days)."""
    graph.delete(f"/users/{user}")
    logger.info("Deleted user '%s'", user)

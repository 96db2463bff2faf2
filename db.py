"""Supabase client and environment settings. Client is cached via Streamlit."""
import logging
import os
from typing import Optional

import streamlit as st
from dotenv import load_dotenv
from supabase import create_client, Client

from engine import DEFAULT_EXAM_TYPE_PRIORITY

load_dotenv()

logger = logging.getLogger(__name__)


def _env_client() -> Client:
    url = os.environ.get("SUPABASE_URL")
    key = os.environ.get("SUPABASE_KEY")
    if not url or not key:
        raise ValueError("SUPABASE_URL and SUPABASE_KEY must be set")
    client = create_client(url, key)
    _sign_in(client)
    return client


def _sign_in(client: Client) -> None:
    """Password sign-in when SUPABASE_USER_EMAIL/SUPABASE_USER_PASSWORD are set; attempts are saved as that user."""
    email = os.environ.get("SUPABASE_USER_EMAIL")
    password = os.environ.get("SUPABASE_USER_PASSWORD")
    if not email or not password:
        return
    try:
        client.auth.sign_in_with_password({"email": email, "password": password})
        logger.info(f"Signed in to Supabase as {email}")
    except Exception as e:
        logger.warning(f"Supabase sign-in failed for {email}: {e}")


@st.cache_resource
def get_supabase() -> Client:
    return _env_client()


def get_configured_user_id() -> Optional[str]:
    """EXAMPREP_USER_ID pins the owner of saved attempts (e.g. with a service key)."""
    user_id = os.environ.get("EXAMPREP_USER_ID", "").strip()
    return user_id or None


def get_log_level() -> int:
    name = os.environ.get("LOG_LEVEL", "INFO").upper()
    level = logging.getLevelName(name)
    return level if isinstance(level, int) else logging.INFO


def get_exam_type_priority() -> tuple[str, ...]:
    """EXAM_TYPE_PRIORITY=WAEC,JAMB overrides the default order for multi-type subjects."""
    raw = os.environ.get("EXAM_TYPE_PRIORITY", "")
    order = tuple(part.strip().upper() for part in raw.split(",") if part.strip())
    return order or DEFAULT_EXAM_TYPE_PRIORITY

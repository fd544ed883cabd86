import asyncio
import logging

import pandas as pd
import streamlit as st

import config
from auth import Authenticated, MustRotate, SessionManager
from exceptions import InventoryError
from gateway import Gateway
from inventory import Inventory
from stores import LocalStore, RemoteStore

logging.basicConfig(level=logging.INFO)

# Page Configuration
st.set_page_config(page_title=f"{config.APP_TITLE} Inventory", page_icon="🏫", layout="wide")


@st.cache_resource
def get_services():
    local = LocalStore()
    inventory = Inventory(Gateway(RemoteStore(), local))
    return inventory, local


def run(coro):
    return asyncio.run(coro)


inventory, local = get_services()

# --- SESSION STATE MANAGEMENT ---
if 'auth' not in st.session_state:
    st.session_state.auth = SessionManager(inventory, local)
    st.session_state.auth.restore()
auth = st.session_state.auth


def show_login():
    col1, col2, col3 = st.columns([1, 1, 1])
    with col2:
        st.header(f"{config.APP_TITLE} Login")
        username = st.text_input("Username or Email")
        password = st.text_input("Password", type="password")
        remember = st.checkbox("Remember me (3 days)")

        if st.button("Login", type="primary", use_container_width=True):
            result = run(auth.login(username, password, remember))
            if isinstance(result, Authenticated):
                st.rerun()
            elif isinstance(result, MustRotate):
                st.session_state.remember = remember
                st.rerun()
            else:
                st.error(result.reason)


def show_rotation():
    col1, col2, col3 = st.columns([1, 1, 1])
    with col2:
        st.header("Change Password")
        st.info(f"**{auth.pending.full_name or auth.pending.username}**, you must set a new password before continuing.")
        new_pass = st.text_input("New Password", type="password")
        confirm = st.text_input("Confirm Password", type="password")
        if st.button("Save Password", type="primary", use_container_width=True):
            try:
                run(auth.update_password(new_pass, confirm, st.session_state.get('remember', False)))
                st.rerun()
            except InventoryError as e:
                st.error(str(e))


def show_devices():
    system_config = run(inventory.get_config())
    st.title(f"📦 {system_config.school_name}")
    st.caption(f"Academic Year {system_config.academic_year}")

    stats = run(inventory.get_stats())
    cols = st.columns(len(stats["by_status"]) + 1)
    cols[0].metric("Total Devices", stats["total"])
    for col, (status, count) in zip(cols[1:], stats["by_status"].items()):
        col.metric(status.replace("_", " ").title(), count)

    devices = run(inventory.get_devices())
    if devices:
        df = pd.DataFrame([d.model_dump(exclude={"history", "custom_fields", "image_url"}) for d in devices])
        st.dataframe(df, use_container_width=True, hide_index=True)
    else:
        st.info("No devices recorded yet.")


# --- AUTHENTICATION FLOW ---
if auth.pending is not None:
    show_rotation()
elif not auth.is_authenticated:
    show_login()
else:
    user = auth.current_user
    st.sidebar.title(f"🏫 {config.APP_TITLE}")
    st.sidebar.caption(f"Version {config.APP_VERSION}")
    st.sidebar.info(f"User: **{user.full_name or user.username}**\nRole: **{user.role.value}**")
    if st.sidebar.button("Logout", type="secondary"):
        auth.logout()
        st.rerun()
    show_devices()

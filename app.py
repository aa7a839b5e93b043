import os
from datetime import date, datetime, timedelta

import streamlit as st
from pydantic import ValidationError

import db
from admin import Moderator, filter_rides, filter_users, load_dashboard, ride_count
from auth import login, logout
from cache import RideCache
from clock import SystemClock
from config import CACHE_DIR, LOCATIONS, PROBE_TIMEOUT, SUPABASE_URL
from connectivity import ConnectivityMonitor
from exceptions import (
    BackendError,
    InstallError,
    InvalidInputError,
    NetworkError,
    NotAuthorizedError,
    ProfileIncompleteError,
)
from log import configure_logging, get_logger
from models import AvatarUpload, Gender, Profile
from network import Request, RequestsNetworkClient
from offline import OfflineWorker
from services import (
    FeedSource,
    delete_my_post,
    list_my_posts,
    load_ride_feed,
    post_ride,
    refresh_ride_feed,
    save_profile,
)
from storage import FileStore
from utils import format_departure, whatsapp_link

# ===========================
# CONFIG / INIT
# ===========================
st.set_page_config(page_title="Ride Partner", layout="centered")
configure_logging()
logger = get_logger("app")

try:
    supabase = db.get_client()
except BackendError as e:
    st.error(str(e))
    st.stop()


@st.cache_resource
def get_offline_worker():
    worker = OfflineWorker(RequestsNetworkClient())
    try:
        worker.install()
        worker.activate()
    except InstallError as e:
        # static assets are optional for a Streamlit front end
        logger.warning(f"Offline worker running without pre-cache: {e}")
    return worker


clock = SystemClock()
worker = get_offline_worker()

if "connectivity" not in st.session_state:
    st.session_state.connectivity = ConnectivityMonitor(clock=clock)
    st.session_state.probe_client = RequestsNetworkClient(timeout=PROBE_TIMEOUT)
connectivity = st.session_state.connectivity

# ===========================
# AUTH
# ===========================
if "user" not in st.session_state:
    st.session_state.user = None

if not st.session_state.user:
    login(supabase)
    st.stop()

user = st.session_state.user
ride_cache = RideCache(FileStore(os.path.join(CACHE_DIR, user["id"])), clock)


def current_profile():
    try:
        row = db.get_profile(supabase, user["id"])
    except BackendError as e:
        st.error(str(e))
        return None
    if not row:
        return None
    try:
        return Profile.model_validate(row)
    except ValidationError as e:
        logger.warning(f"Unreadable profile for {user['id']}: {e}")
        return None


def show_avatar(url, caption):
    if not url:
        return
    try:
        response = worker.fetch(Request(url))
    except NetworkError:
        return
    if response is not None and response.ok:
        st.image(response.read(), width=48, caption=caption)


# ===========================
# MAIN UI
# ===========================
st.sidebar.title(f"Welcome, {user.get('email')}")
if st.sidebar.button("Log out"):
    logout(supabase)

connectivity.probe(st.session_state.probe_client, SUPABASE_URL)
if not connectivity.is_online:
    st.sidebar.warning("Offline - using cached data")

menu = ["Find Partner", "Post Ride", "My Posts", "Profile", "Admin"]
choice = st.sidebar.radio("Go to", menu)

# ---------- Find Partner ----------
if choice == "Find Partner":
    st.title("Find a Ride Partner")
    refresh = st.button("Refresh data" if connectivity.is_online else "Show cached data")
    try:
        if refresh:
            connectivity.probe(st.session_state.probe_client, SUPABASE_URL, force=True)
            feed = refresh_ride_feed(supabase, ride_cache, user["id"], connectivity.is_online, clock)
        else:
            feed = load_ride_feed(supabase, ride_cache, user["id"], clock)
    except ProfileIncompleteError as e:
        st.warning(str(e))
        st.stop()

    if feed.source == FeedSource.STALE and feed.message:
        st.info(feed.message)
    if not feed.rides:
        if feed.source == FeedSource.EMPTY and feed.message:
            st.warning(feed.message)
        else:
            st.info("No matches found. Try posting a ride to find matches!")
    for ride in feed.rides:
        poster = ride.profiles
        with st.container(border=True):
            name = poster.name if poster else "Unknown"
            if poster:
                show_avatar(poster.avatar_url, name)
            st.subheader(name)
            st.write(f"🕒 {format_departure(ride.time)}")
            st.write(f"📍 {ride.from_} → {ride.to}")
            link = whatsapp_link(poster.whatsapp if poster else None)
            if link:
                st.link_button("WhatsApp", link)
            if poster and poster.email:
                st.link_button("Email", f"mailto:{poster.email}")

# ---------- Post Ride ----------
elif choice == "Post Ride":
    st.title("Post a Ride")
    with st.form("ride_form"):
        from_ = st.selectbox("Pickup Location", LOCATIONS, index=None)
        to = st.selectbox("Drop Location", LOCATIONS, index=None)
        day = st.date_input("Departure Date", value=date.today(), min_value=date.today())
        at = st.time_input("Departure Time", value=(datetime.now() + timedelta(hours=1)).time())
        submit = st.form_submit_button("Post Ride")

    if submit:
        try:
            post_ride(supabase, user["id"], from_, to, day, at, clock=clock, cache=ride_cache)
        except (InvalidInputError, ProfileIncompleteError, NotAuthorizedError, BackendError) as e:
            st.error(str(e))
        else:
            st.success("Ride posted!")

# ---------- My Posts ----------
elif choice == "My Posts":
    st.title("My Ride Posts")
    try:
        my_rides = list_my_posts(supabase, user["id"])
    except BackendError as e:
        st.error("Failed to load your rides. Please try again.")
        logger.error(f"Loading posts failed: {e}")
        my_rides = []

    if not my_rides:
        st.info("No rides posted. Get started by creating a new ride post.")
    for ride in my_rides:
        cols = st.columns([4, 1])
        cols[0].write(f"**{ride.from_} → {ride.to}**  \nTime: {format_departure(ride.time)}")
        if cols[1].button("Delete", key=f"delete-{ride.id}"):
            try:
                delete_my_post(supabase, user["id"], ride.id, cache=ride_cache)
            except BackendError as e:
                st.error(f"Failed to delete the ride. {e}")
            else:
                st.rerun()

# ---------- Profile ----------
elif choice == "Profile":
    st.title("Profile Setup")
    existing = current_profile()
    genders = [g.value for g in Gender]
    with st.form("profile_form"):
        name = st.text_input("Full Name", value=(existing.name or "") if existing else "")
        gender = st.selectbox(
            "Gender",
            genders,
            index=genders.index(existing.gender.value) if existing and existing.gender else None,
        )
        whatsapp = st.text_input("WhatsApp Number", value=(existing.whatsapp or "") if existing else "")
        upload = st.file_uploader("Profile Picture", type=["png", "jpg", "jpeg", "gif", "webp"])
        submit = st.form_submit_button("Save Profile")

    if submit:
        avatar = None
        if upload is not None:
            avatar = AvatarUpload(filename=upload.name, content_type=upload.type or "", data=upload.getvalue())
        try:
            save_profile(supabase, user["id"], name, gender, whatsapp, avatar, clock=clock, cache=ride_cache)
        except (InvalidInputError, BackendError) as e:
            st.error(str(e))
        else:
            st.success("Profile saved!")

# ---------- Admin ----------
elif choice == "Admin":
    try:
        moderator = Moderator(supabase, current_profile(), user.get("email"), clock)
    except NotAuthorizedError as e:
        st.error(str(e))
        st.stop()

    st.title("Admin Dashboard")
    c1, c2, c3 = st.columns(3)
    start = c1.date_input("From", value=None)
    end = c2.date_input("To", value=None)
    search = c3.text_input("Search...")
    try:
        dashboard = load_dashboard(supabase, start, end)
    except BackendError as e:
        st.error(str(e))
        st.stop()

    users_tab, rides_tab, audit_tab = st.tabs(
        [
            f"Users ({len(dashboard.users)})",
            f"Rides ({len(dashboard.rides)})",
            f"Audit Log ({len(dashboard.audit_logs)})",
        ]
    )

    with users_tab:
        status = st.selectbox("Status", ["all", "active", "blocked"])
        for u in filter_users(dashboard.users, search, status):
            label = u.get("email") or u.get("name") or u["user_id"]
            cols = st.columns([3, 1, 1])
            cols[0].write(
                f"**{u.get('name')}** ({u.get('status') or 'active'})  \n"
                f"{u.get('email') or ''} · {ride_count(u)} rides"
            )
            try:
                if u.get("status") == "blocked":
                    if cols[1].button("Unblock", key=f"unblock-{u['user_id']}"):
                        moderator.unblock_user(u["user_id"], label)
                        st.rerun()
                elif cols[1].button("Block", key=f"block-{u['user_id']}"):
                    moderator.block_user(u["user_id"], label)
                    st.rerun()
                if cols[2].button("Delete", key=f"deluser-{u['user_id']}"):
                    moderator.delete_user(u["user_id"], label)
                    st.rerun()
            except BackendError as e:
                st.error(str(e))

    with rides_tab:
        for r in filter_rides(dashboard.rides, search):
            cols = st.columns([4, 1])
            poster = (r.get("profiles") or {}).get("name") or "Unknown"
            cols[0].write(f"**{r.get('from')} → {r.get('to')}**  \n{format_departure(r.get('time'))} · Posted by: {poster}")
            if cols[1].button("Delete", key=f"delride-{r.get('id')}"):
                try:
                    moderator.delete_ride(r)
                except BackendError as e:
                    st.error(str(e))
                else:
                    st.rerun()

    with audit_tab:
        for log_entry in dashboard.audit_logs:
            actor = log_entry.profiles.name if log_entry.profiles and log_entry.profiles.name else "System"
            target = f" → {log_entry.target_profiles.name}" if log_entry.target_profiles else ""
            when = log_entry.created_at.strftime("%Y-%m-%d %H:%M") if log_entry.created_at else ""
            st.write(f"`{log_entry.action.value}` {actor}{target}: {log_entry.details} ({when})")

"""
Google Meet page surface backed by Playwright.

Each session gets its own Chromium process so sessions never share cookies,
media permissions or a crashed renderer.
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Optional

from playwright.async_api import (
    Browser,
    BrowserContext,
    Page,
    Playwright,
    async_playwright,
)

from meet_capture.agent.page_state import PageIndicators
from meet_capture.agent.surface import CaptionCallback, MeetingSurface
from meet_capture.config import BotSettings
from meet_capture.core.exceptions import BrowserLaunchError
from meet_capture.core.logging import get_logger


logger = get_logger("meet_page")


CAPTION_BINDING = "meetCaptureCaption"

MEETING_CODE_SELECTORS = [
    'div[tt-id^="ucc-"]',
    "div.uBRSj[tt-id]",
    "span.WfLVEc",
]

CAMERA_SELECTORS = [
    'button[aria-label*="Turn off camera"]',
    'div[role="button"][aria-label*="Turn off camera"]',
    'button[data-is-muted="false"][aria-label*="camera"]',
    'button[aria-label*="Matikan kamera"]',
    '[data-tooltip*="Turn off camera"]',
]

MIC_SELECTORS = [
    'button[aria-label*="Turn off microphone"]',
    'div[role="button"][aria-label*="Turn off microphone"]',
    'button[data-is-muted="false"][aria-label*="microphone"]',
    'button[aria-label*="Matikan mikrofon"]',
    '[data-tooltip*="Turn off microphone"]',
]

OVERLAY_BUTTONS = ["Got it", "Dismiss", "Continue without microphone and camera", "Close"]

JOIN_BUTTONS = ["Ask to join", "Join now", "Join"]

NAME_INPUT_SELECTORS = [
    'input[placeholder="Your name"]',
    'input[aria-label="Your name"]',
    'input[placeholder="Enter your name"]',
]

CAPTION_BUTTON_SELECTORS = [
    'button[aria-label*="Turn on captions"]',
    'button[jsname="r8qRAd"]',
    'button[icon="cc"]',
]

CHAT_BUTTON_SELECTORS = [
    'button[aria-label*="Chat with everyone"]',
    'button[aria-label*="Chat"]',
]

CHAT_INPUT_SELECTORS = [
    'textarea[aria-label*="Send a message"]',
    'textarea[aria-label*="message"]',
    'input[aria-label*="message"]',
]

LEAVE_SELECTORS = [
    'button[aria-label*="Leave call"]',
    'button[aria-label*="Leave meeting"]',
    'button[aria-label*="Tinggalkan"]',
    '[data-tooltip*="Leave"]',
]


READ_INDICATORS_JS = """
(codeSelectors) => {
    let code = null;
    for (const sel of codeSelectors) {
        const el = document.querySelector(sel);
        if (el && el.textContent) { code = el.textContent; break; }
    }
    const heading = document.querySelector('h1[jsname="r4nke"]');
    return {
        meeting_code_text: code,
        waiting_room_element: !!document.querySelector('.U0e0y'),
        body_text: document.body ? document.body.innerText : "",
        end_heading_text: heading ? heading.textContent : null,
        captions_visible: !!document.querySelector('.TbmXe, .iOzk7, .V4259c'),
    };
}
"""

# Forwards every added node / rewritten text node to Python.
# Speaker resolution walks up a few levels looking for the name badge.
CAPTION_OBSERVER_JS = """
(binding) => {
    if (window.__meetCaptureObserver) { return; }
    const badgeSelectors = '.NWpY1d, .xoMHSc';
    const nameSelectors = ['span.NWpY1d', '.xoMHSc', 'img.K63Fr', 'div[jsname="tBTfMc"]', '.zs7s8d'];

    const speakerOf = (node) => {
        let current = node;
        for (let depth = 0; depth < 5 && current; depth++) {
            if (current.querySelector) {
                for (const sel of nameSelectors) {
                    const el = current.querySelector(sel);
                    if (!el) continue;
                    const txt = (el.textContent || el.getAttribute('alt') || el.getAttribute('aria-label') || '').trim();
                    if (txt && !/^\\d+$/.test(txt)) return txt;
                }
            }
            current = current.parentElement;
        }
        return null;
    };

    const textOf = (node) => {
        const clone = node.cloneNode(true);
        clone.querySelectorAll(badgeSelectors).forEach(el => el.remove());
        return (clone.textContent || '').trim();
    };

    const forward = (node) => {
        const text = textOf(node);
        if (!text) return;
        window[binding]({ speaker: speakerOf(node), text: text });
    };

    window.__meetCaptureObserver = new MutationObserver((mutations) => {
        for (const m of mutations) {
            for (const node of m.addedNodes) {
                if (node instanceof HTMLElement) forward(node);
            }
            if (m.type === 'characterData' && m.target && m.target.parentElement) {
                forward(m.target.parentElement);
            }
        }
    });
    window.__meetCaptureObserver.observe(document.body, { childList: true, characterData: true, subtree: true });
}
"""

STOP_OBSERVER_JS = """
() => {
    if (window.__meetCaptureObserver) {
        window.__meetCaptureObserver.disconnect();
        window.__meetCaptureObserver = null;
    }
}
"""


class MeetPage(MeetingSurface):
    """Playwright implementation of the meeting surface for Google Meet."""

    def __init__(
        self,
        playwright: Playwright,
        browser: Browser,
        context: BrowserContext,
        page: Page,
        bot_name: str,
    ):
        self._playwright = playwright
        self._browser = browser
        self._context = context
        self.page = page
        self.bot_name = bot_name
        self._caption_callback: Optional[CaptionCallback] = None
        self._binding_exposed = False
        self._closed = False

    @property
    def url(self) -> str:
        return self.page.url

    async def open(self, url: str) -> None:
        logger.info(f"Navigating to {url}...")
        await self.page.goto(url, wait_until="load")

    async def read_indicators(self) -> PageIndicators:
        data = await self.page.evaluate(READ_INDICATORS_JS, MEETING_CODE_SELECTORS)
        return PageIndicators(**data)

    async def _click_first(self, selectors, label: str) -> bool:
        for selector in selectors:
            try:
                btn = self.page.locator(selector).first
                if await btn.is_visible(timeout=1000):
                    await btn.click(timeout=5000)
                    logger.debug(f"Clicked {label} via: {selector}")
                    return True
            except Exception as e:
                logger.debug(f"{label} selector {selector} failed: {e}")
        return False

    async def _click_button_named(self, names) -> bool:
        for name in names:
            try:
                btn = self.page.get_by_role("button", name=name, exact=True)
                if await btn.is_visible(timeout=2000):
                    try:
                        await btn.click(timeout=5000)
                    except Exception as click_error:
                        logger.warning(f"Normal click failed for '{name}': {click_error}. Trying force click...")
                        await btn.click(force=True)
                    logger.info(f"Clicked '{name}' button.")
                    return True
            except Exception as e:
                logger.debug(f"Button '{name}' not usable: {e}")
        return False

    async def mute_media(self) -> bool:
        camera_off = await self._click_first(CAMERA_SELECTORS, "camera toggle")
        mic_off = await self._click_first(MIC_SELECTORS, "microphone toggle")
        return camera_off and mic_off

    async def dismiss_overlays(self) -> bool:
        dismissed = await self._click_button_named(OVERLAY_BUTTONS)
        # Guest flow asks for a display name before the join button appears
        for selector in NAME_INPUT_SELECTORS:
            try:
                name_input = self.page.locator(selector).first
                if await name_input.is_visible(timeout=1000):
                    await name_input.fill(self.bot_name)
                    logger.info(f"Guest mode detected. Entered bot name: {self.bot_name}")
                    break
            except Exception as e:
                logger.debug(f"Name input {selector} not usable: {e}")
        return dismissed

    async def click_join(self) -> bool:
        return await self._click_button_named(JOIN_BUTTONS)

    async def enable_captions(self) -> bool:
        turn_off_btn = self.page.locator('button[aria-label*="Turn off captions"]')
        if await turn_off_btn.count() > 0 and await turn_off_btn.first.is_visible():
            return True

        await self.page.keyboard.press("c")
        await asyncio.sleep(2)
        if await turn_off_btn.count() > 0 and await turn_off_btn.first.is_visible():
            return True

        if await self._click_first(CAPTION_BUTTON_SELECTORS, "captions button"):
            await asyncio.sleep(1)
            return True
        return False

    async def send_chat_message(self, message: str) -> bool:
        if not await self._click_first(CHAT_BUTTON_SELECTORS, "chat button"):
            return False
        await asyncio.sleep(1)
        for selector in CHAT_INPUT_SELECTORS:
            chat_input = self.page.locator(selector).first
            try:
                if await chat_input.is_visible(timeout=2000):
                    await chat_input.fill(message)
                    await chat_input.press("Enter")
                    return True
            except Exception as e:
                logger.debug(f"Chat input {selector} not usable: {e}")
        return False

    async def click_leave(self) -> bool:
        if await self._click_first(LEAVE_SELECTORS, "leave button"):
            return True
        try:
            await self.page.keyboard.press("Control+Alt+q")
        except Exception as e:
            logger.debug(f"Leave shortcut failed: {e}")
        return False

    async def start_caption_observer(self, callback: CaptionCallback) -> None:
        self._caption_callback = callback

        if not self._binding_exposed:
            async def on_caption(data):
                if self._caption_callback is None:
                    return
                await self._caption_callback(data.get("speaker"), data.get("text", ""))

            await self.page.expose_function(CAPTION_BINDING, on_caption)
            self._binding_exposed = True

        await self.page.evaluate(CAPTION_OBSERVER_JS, CAPTION_BINDING)

    async def stop_caption_observer(self) -> None:
        self._caption_callback = None
        if self.page.is_closed():
            return
        try:
            await self.page.evaluate(STOP_OBSERVER_JS)
        except Exception as e:
            logger.debug(f"Could not disconnect caption observer: {e}")

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            await self._context.close()
        finally:
            try:
                await self._browser.close()
            finally:
                await self._playwright.stop()
        logger.info("Browser closed")


async def launch_meet_surface(bot_settings: BotSettings, session_id: str) -> MeetPage:
    """Start a dedicated Chromium process for one session."""
    playwright = await async_playwright().start()
    try:
        browser = await playwright.chromium.launch(
            headless=bot_settings.headless,
            args=[
                "--use-fake-ui-for-media-stream",
                "--no-sandbox",
                "--disable-setuid-sandbox",
                "--disable-infobars",
            ],
        )
    except Exception as e:
        await playwright.stop()
        raise BrowserLaunchError(f"Failed to launch browser: {e}", {"session_id": session_id}) from e

    storage_state = Path(bot_settings.user_data_dir) / "storage_state.json"
    try:
        context = await browser.new_context(
            viewport={"width": 1280, "height": 720},
            permissions=["microphone", "camera"],
            ignore_https_errors=True,
            storage_state=str(storage_state) if storage_state.exists() else None,
        )
        page = await context.new_page()
    except Exception as e:
        await browser.close()
        await playwright.stop()
        raise BrowserLaunchError(f"Failed to open browser context: {e}", {"session_id": session_id}) from e

    page.on("console", lambda msg: logger.debug(f"BROWSER CONSOLE: {msg.text}"))

    logger.info(f"Browser launched for session {session_id}")
    return MeetPage(playwright, browser, context, page, bot_settings.name)

from __future__ import annotations

from typing import Dict

DEFAULT_LOCALE = "zh"

MESSAGES: Dict[str, Dict[str, str]] = {
    "zh": {
        "gate_required": "请先通过人类验证",
        "bot_detected": "机器人检测触发",
        "credentials_required": "请输入邮箱与密码",
        "email_required": "请输入注册邮箱",
        "sign_up_confirm": "注册成功，确认邮件已发送，请前往邮箱验证。",
        "sign_up_ok": "注册成功",
        "sign_up_failed": "注册失败",
        "sign_in_confirm": "请先完成邮箱验证",
        "sign_in_ok": "登录成功",
        "sign_in_failed": "登录失败",
        "email_confirmed": "邮箱已验证，欢迎进入！",
        "email_not_confirmed": "尚未验证，请稍后再试",
        "reset_sent": "重置邮件已发送，请检查邮箱。",
        "reset_failed": "发送失败",
        "password_required": "请输入新密码",
        "password_updated": "密码已更新，正在跳转...",
        "password_update_failed": "更新失败",
        "signed_out": "已退出",
    },
    "en": {
        "gate_required": "Please pass the human check first",
        "bot_detected": "Automated submission detected",
        "credentials_required": "Please enter email and password",
        "email_required": "Please enter your account email",
        "sign_up_confirm": "Registered. A confirmation email has been sent, please verify your address.",
        "sign_up_ok": "Registered",
        "sign_up_failed": "Registration failed",
        "sign_in_confirm": "Please confirm your email first",
        "sign_in_ok": "Signed in",
        "sign_in_failed": "Sign-in failed",
        "email_confirmed": "Email confirmed, welcome!",
        "email_not_confirmed": "Not confirmed yet, please try again later",
        "reset_sent": "Reset email sent, please check your inbox.",
        "reset_failed": "Sending failed",
        "password_required": "Please enter a new password",
        "password_updated": "Password updated, redirecting...",
        "password_update_failed": "Update failed",
        "signed_out": "Signed out",
    },
}


def get_message(key: str, locale: str = DEFAULT_LOCALE) -> str:
    table = MESSAGES.get(locale) or MESSAGES[DEFAULT_LOCALE]
    return table.get(key) or MESSAGES[DEFAULT_LOCALE][key]

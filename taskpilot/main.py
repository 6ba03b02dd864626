#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
taskpilot - 主入口

在工作区目录中以对话方式管理任务。
"""
import argparse
import asyncio
import logging
import signal
import sys
import threading
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from .config.settings import AppConfig, load_config, validate
from .context import AppContext, create_app_context
from .chat.prompts import GENERAL_HELP
from .utils.helpers import format_timestamp, truncate_text

logger = logging.getLogger('taskpilot')


def setup_logging(level: str = "INFO", data_dir: str = ".taskpilot"):
    """配置日志"""
    Path(data_dir).mkdir(parents=True, exist_ok=True)

    log_level = getattr(logging, level.upper(), logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers.clear()

    # 控制台只输出 WARNING 及以上
    console_handler = logging.StreamHandler()
    console_handler.setLevel(logging.WARNING)
    console_handler.setFormatter(logging.Formatter('%(levelname)s - %(message)s'))

    file_handler = logging.FileHandler(Path(data_dir) / 'app.log', encoding='utf-8')
    file_handler.setLevel(log_level)
    file_handler.setFormatter(logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    ))

    root_logger.addHandler(console_handler)
    root_logger.addHandler(file_handler)

    for logger_name in ['urllib3', 'asyncio']:
        logging.getLogger(logger_name).setLevel(logging.WARNING)


class TaskPilotApp:
    """命令行前端"""

    def __init__(self, context: AppContext):
        self.context = context
        self.dispatcher = context.dispatcher

    def _print_banner(self):
        settings = self.context.settings
        model = settings.llm.model if self.context.completion.available else "off"
        print("\n" + "=" * 50)
        print("🧭 taskpilot")
        print(f"   workspace: {self.context.store.paths.workspace_root}")
        print(f"   model: {model}")
        print("=" * 50)
        print("Commands:")
        print("  /quit, /q          - exit")
        print("  /history           - show recent exchanges")
        print("  /clear, /c         - clear conversation history")
        print("  /help, /h          - show help")
        print("Anything else is a chat message, e.g. 'list all tasks'.")
        print("=" * 50 + "\n")

    async def ask(self, text: str) -> str:
        """处理一条消息，流式输出模型回复；Ctrl-C 中止模型调用"""
        cancel_event = threading.Event()
        streamed = False

        def on_chunk(chunk: str):
            nonlocal streamed
            streamed = True
            print(chunk, end='', flush=True)

        def on_progress(message: str):
            print(f"  {message}", flush=True)

        def on_interrupt(signum, frame):
            cancel_event.set()

        previous = signal.signal(signal.SIGINT, on_interrupt)
        try:
            response = await self.dispatcher.dispatch(
                text, on_chunk=on_chunk, on_progress=on_progress, cancel_event=cancel_event
            )
        finally:
            signal.signal(signal.SIGINT, previous)

        if streamed:
            print()
            if cancel_event.is_set():
                print(response)
        else:
            print(response)
        return response

    async def interactive_chat(self):
        """交互模式"""
        self._print_banner()

        while True:
            try:
                user_input = input("👤 you: ").strip()
            except (KeyboardInterrupt, EOFError):
                print("\n👋 Bye!")
                break

            if not user_input:
                continue

            if user_input.startswith('/'):
                if self._handle_command(user_input):
                    break
                continue

            print("🧭 ", end='', flush=True)
            await self.ask(user_input)
            print()

    def _handle_command(self, cmd: str) -> bool:
        """处理斜杠命令，返回 True 表示退出"""
        cmd = cmd.lower()

        if cmd in ['/quit', '/q', '/exit']:
            print("👋 Bye!")
            return True
        elif cmd in ['/clear', '/c']:
            self.dispatcher.history.clear()
            print("🗑️ Conversation history cleared")
        elif cmd == '/history':
            exchanges = self.dispatcher.history.exchanges()
            if not exchanges:
                print("No conversation history yet")
            for exchange in exchanges:
                print(f"[{format_timestamp(exchange.timestamp)}] you: {truncate_text(exchange.user, 80)}")
                print(f"  -> {truncate_text(exchange.assistant, 100)}")
        elif cmd in ['/help', '/h']:
            print(GENERAL_HELP)
        else:
            print(f"❓ Unknown command: {cmd}")

        return False


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description='taskpilot - chat-driven task manager')
    parser.add_argument('utterance', nargs='*', help='run one chat command and exit')
    parser.add_argument('-w', '--workspace', help='workspace root (default: current directory)')
    parser.add_argument('--log-level', help='log level (default: LOG_LEVEL or INFO)')
    parser.add_argument('--llm-provider', choices=['openai', 'ollama', 'none'], help='language model provider')
    parser.add_argument('--llm-model', help='language model name')
    parser.add_argument('--no-llm', action='store_true', help='run without a language model')
    return parser


def apply_args(settings: AppConfig, args: argparse.Namespace) -> AppConfig:
    """命令行参数 > 配置文件 > 环境变量 > 默认值"""
    if args.log_level:
        settings.log_level = args.log_level
    if args.llm_provider:
        settings.llm.provider = args.llm_provider
    if args.llm_model:
        settings.llm.model = args.llm_model
    if args.no_llm:
        settings.llm.provider = "none"
    return validate(settings)


async def async_main(argv: Optional[list[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    load_dotenv(Path(args.workspace or '.') / '.env')

    settings = apply_args(load_config(args.workspace), args)
    setup_logging(settings.log_level, settings.data_dir)

    context = create_app_context(settings)
    app = TaskPilotApp(context)

    if args.utterance:
        await app.ask(" ".join(args.utterance))
    else:
        await app.interactive_chat()
    return 0


def main():
    """主入口"""
    sys.exit(asyncio.run(async_main()))


if __name__ == "__main__":
    main()

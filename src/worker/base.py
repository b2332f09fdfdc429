# src/worker/base.py
"""
Базовый класс для воркеров, читающих очередь RabbitMQ пачками.
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from typing import List, Optional

from src.common.constants import TypeMsg
from src.common.errors import RideMatchError, TransientDependency
from src.common.logger import log_error, log_info, log_warning
from src.infra.event_bus import EventQueue, ReceivedMessage, get_event_queue


class BaseWorker(ABC):
    """
    Базовый класс для всех воркеров.
    Забирает сообщения из очереди и решает их судьбу по исходу обработки:
    - успех -> ack
    - TransientDependency -> возврат в очередь
    - битое сообщение или терминальная ошибка -> ack с записью в лог
    """

    def __init__(
        self,
        event_queue: Optional[EventQueue] = None,
        batch_size: Optional[int] = None,
        wait_seconds: Optional[float] = None,
    ) -> None:
        """
        Инициализирует воркер.

        Args:
            event_queue: Очередь событий
            batch_size: Сколько сообщений забирать за раз (из конфига если None)
            wait_seconds: Сколько ждать сообщений при пустой очереди (из конфига если None)
        """
        from src.config import settings

        self.event_queue = event_queue or get_event_queue()
        self.batch_size = batch_size or settings.intake.BATCH_SIZE
        self.wait_seconds = settings.intake.POLL_WAIT_SECONDS if wait_seconds is None else wait_seconds
        self.idle_sleep = settings.intake.IDLE_SLEEP_SECONDS
        self.backoff_base = settings.intake.RETRY_BACKOFF_SECONDS
        self.backoff_max = settings.intake.RETRY_BACKOFF_MAX_SECONDS
        self._running = False
        self._tasks: List[asyncio.Task] = []

    @property
    @abstractmethod
    def name(self) -> str:
        """Имя воркера."""
        pass

    @abstractmethod
    async def handle_message(self, message: ReceivedMessage) -> None:
        """
        Обрабатывает одно сообщение.

        Raises:
            ValueError: сообщение не разобрать (будет подтверждено и отброшено)
            TransientDependency: временный сбой (сообщение вернётся в очередь)
        """
        pass

    @property
    def is_running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Запускает цикл опроса очереди."""
        if self._running:
            return

        self._running = True
        await log_info(f"Воркер {self.name} запускается...", type_msg=TypeMsg.INFO)
        self._tasks.append(asyncio.create_task(self._poll_loop(), name=f"{self.name}.poll"))
        await log_info(f"Воркер {self.name} запущен", type_msg=TypeMsg.INFO)

    async def stop(self) -> None:
        """Останавливает воркер."""
        if not self._running:
            return

        self._running = False

        for task in self._tasks:
            task.cancel()

        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)

        self._tasks.clear()
        await log_info(f"Воркер {self.name} остановлен", type_msg=TypeMsg.INFO)

    async def _poll_loop(self) -> None:
        """Опрашивает очередь, пока воркер запущен. Не падает на ошибках обработки."""
        backoff = self.backoff_base

        while self._running:
            try:
                messages = await self.event_queue.receive(self.batch_size, self.wait_seconds)
            except TransientDependency as e:
                await log_warning(f"Очередь недоступна, повтор через {backoff:.1f} с: {e}")
                await asyncio.sleep(backoff)
                backoff = min(backoff * 2, self.backoff_max)
                continue

            backoff = self.backoff_base

            if not messages:
                await asyncio.sleep(self.idle_sleep)
                continue

            await self.process_batch(messages)

    async def process_batch(self, messages: list[ReceivedMessage]) -> None:
        """Обрабатывает пачку сообщений параллельно."""
        await log_info(
            f"Воркер {self.name} получил {len(messages)} сообщений",
            type_msg=TypeMsg.DEBUG,
        )
        await asyncio.gather(*(self._process(message) for message in messages))

    async def _process(self, message: ReceivedMessage) -> None:
        """Обработка одного сообщения и подтверждение по исходу."""
        requeue = False
        context = {"message_id": message.message_id, "redelivered": message.redelivered}
        try:
            await self.handle_message(message)
        except TransientDependency as e:
            await log_warning(
                f"Временная ошибка в воркере {self.name}, сообщение вернётся в очередь: {e}",
                extra=context,
            )
            requeue = True
        except RideMatchError as e:
            await log_error(
                f"Терминальная ошибка в воркере {self.name}: {e.message}",
                extra={**context, "code": e.code},
            )
        except ValueError as e:
            await log_error(
                f"Битое сообщение в воркере {self.name}: {e}",
                extra={**context, "body": message.body[:512].decode(errors="replace")},
            )
        except Exception as e:
            await log_error(
                f"Ошибка в воркере {self.name}: {e}",
                extra=context,
                exc_info=True,
            )

        try:
            if requeue:
                await self.event_queue.reject(message, requeue=True)
            else:
                await self.event_queue.ack(message)
        except Exception as e:
            # Неподтверждённое сообщение будет доставлено повторно
            await log_error(f"Не удалось подтвердить сообщение {message.message_id}: {e}")

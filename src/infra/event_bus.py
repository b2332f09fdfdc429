# src/infra/event_bus.py
"""
Очередь входящих событий на базе RabbitMQ.
Воркер забирает сообщения пачками (pull), подтверждает их после обработки
и возвращает в очередь при временных ошибках.
"""

from __future__ import annotations

import asyncio
import json
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any
from uuid import uuid4

import aio_pika
from aio_pika import DeliveryMode, Message
from aio_pika.abc import AbstractChannel, AbstractConnection, AbstractIncomingMessage, AbstractQueue
from aio_pika.exceptions import AMQPError

from src.common.constants import TypeMsg
from src.common.errors import TransientDependency
from src.common.logger import log_error, log_info


# Пауза между пустыми опросами внутри окна ожидания
_POLL_INTERVAL_SECONDS = 0.5


@dataclass
class ReceivedMessage:
    """Полученное из очереди сообщение, ещё не подтверждённое."""
    body: bytes
    message_id: str = field(default_factory=lambda: str(uuid4()))
    delivery: AbstractIncomingMessage | None = None

    @property
    def redelivered(self) -> bool:
        """Доставлялось ли сообщение ранее."""
        return bool(self.delivery is not None and self.delivery.redelivered)


class EventQueue:
    """
    Очередь событий на базе RabbitMQ.

    Реализует:
    - Пакетное получение сообщений с ограниченным ожиданием
    - Публикацию событий обратно в очередь
    - Подтверждение и возврат сообщений
    - Автоматическое переподключение (connect_robust)
    """

    _instance: EventQueue | None = None

    def __new__(cls) -> EventQueue:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __init__(self) -> None:
        """Инициализация (вызывается только один раз благодаря Singleton)."""
        if hasattr(self, "_initialized"):
            return
        self._initialized = True
        self._connection: AbstractConnection | None = None
        self._channel: AbstractChannel | None = None
        self._queue: AbstractQueue | None = None
        self._queue_name = "ride_match.events"

    @property
    def is_connected(self) -> bool:
        """Проверяет, активно ли соединение."""
        return self._connection is not None and not self._connection.is_closed

    @property
    def queue_name(self) -> str:
        return self._queue_name

    async def connect(
        self,
        url: str | None = None,
        queue_name: str | None = None,
        prefetch_count: int = 10,
    ) -> None:
        """
        Подключается к RabbitMQ и объявляет очередь.

        Args:
            url: URL RabbitMQ (если None, берётся из конфига)
            queue_name: Имя очереди
            prefetch_count: Количество сообщений для prefetch
        """
        if self.is_connected:
            return

        if url is None:
            from src.config import settings
            url = settings.rabbitmq.url
            queue_name = settings.rabbitmq.RABBITMQ_QUEUE

        if queue_name:
            self._queue_name = queue_name

        await log_info("Подключение к RabbitMQ...", type_msg=TypeMsg.INFO)

        try:
            self._connection = await aio_pika.connect_robust(url)
            self._channel = await self._connection.channel()
            await self._channel.set_qos(prefetch_count=prefetch_count)
            self._queue = await self._channel.declare_queue(self._queue_name, durable=True)
        except (AMQPError, OSError) as e:
            await log_error(f"Не удалось подключиться к RabbitMQ: {e}")
            raise TransientDependency(f"RabbitMQ unavailable: {e}") from e

        await log_info(f"Подключение к RabbitMQ установлено, очередь {self._queue_name}", type_msg=TypeMsg.INFO)

    async def disconnect(self) -> None:
        """Закрывает соединение с RabbitMQ."""
        if self._connection is not None:
            await self._connection.close()
            self._connection = None
            self._channel = None
            self._queue = None
            await log_info("Соединение с RabbitMQ закрыто", type_msg=TypeMsg.INFO)

    async def receive(self, max_messages: int = 10, wait_seconds: float = 20.0) -> list[ReceivedMessage]:
        """
        Забирает до max_messages сообщений.
        Ждёт не дольше wait_seconds, если очередь пуста; возвращает
        сразу, как только получено хотя бы одно сообщение и очередь опустела.

        Returns:
            Список неподтверждённых сообщений (может быть пустым)
        """
        if not self.is_connected or self._queue is None:
            raise TransientDependency("Нет соединения с RabbitMQ")

        messages: list[ReceivedMessage] = []
        deadline = time.monotonic() + wait_seconds

        try:
            while len(messages) < max_messages:
                incoming = await self._queue.get(no_ack=False, fail=False)
                if incoming is not None:
                    messages.append(
                        ReceivedMessage(
                            body=incoming.body,
                            message_id=incoming.message_id or str(uuid4()),
                            delivery=incoming,
                        )
                    )
                    continue

                if messages:
                    break

                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    break
                await asyncio.sleep(min(_POLL_INTERVAL_SECONDS, remaining))
        except (AMQPError, OSError) as e:
            raise TransientDependency(f"RabbitMQ receive failed: {e}") from e

        return messages

    async def publish(self, envelope: dict[str, Any]) -> None:
        """
        Публикует событие в рабочую очередь.

        Args:
            envelope: Тело события ({"EVENT_TYPE": ..., ...})
        """
        if not self.is_connected or self._channel is None:
            raise TransientDependency("Не удалось опубликовать событие: нет соединения с RabbitMQ")

        message = Message(
            body=json.dumps(envelope, ensure_ascii=False, default=str).encode(),
            content_type="application/json",
            message_id=str(uuid4()),
            timestamp=datetime.now(timezone.utc),
            delivery_mode=DeliveryMode.PERSISTENT,
        )

        try:
            await self._channel.default_exchange.publish(message, routing_key=self._queue_name)
        except (AMQPError, OSError) as e:
            await log_error(f"Ошибка публикации события: {e}")
            raise TransientDependency(f"RabbitMQ publish failed: {e}") from e

        await log_info(
            f"Событие опубликовано: {envelope.get('EVENT_TYPE')}",
            type_msg=TypeMsg.DEBUG,
        )

    async def ack(self, message: ReceivedMessage) -> None:
        """Подтверждает обработку сообщения."""
        if message.delivery is not None:
            await message.delivery.ack()

    async def reject(self, message: ReceivedMessage, requeue: bool = True) -> None:
        """Возвращает сообщение в очередь (или отбрасывает)."""
        if message.delivery is not None:
            await message.delivery.reject(requeue=requeue)


# Глобальный экземпляр
_event_queue: EventQueue | None = None


def get_event_queue() -> EventQueue:
    """Возвращает глобальный экземпляр EventQueue."""
    global _event_queue
    if _event_queue is None:
        _event_queue = EventQueue()
    return _event_queue


async def init_event_queue() -> None:
    """
    Инициализирует подключение к RabbitMQ.
    Использует настройки из конфигурации.
    """
    from src.config import settings

    queue = get_event_queue()
    await queue.connect(
        url=settings.rabbitmq.url,
        queue_name=settings.rabbitmq.RABBITMQ_QUEUE,
        prefetch_count=settings.intake.BATCH_SIZE,
    )
    await log_info(
        f"RabbitMQ подключён: {settings.rabbitmq.RABBITMQ_HOST}:{settings.rabbitmq.RABBITMQ_PORT}",
        type_msg=TypeMsg.INFO,
    )


async def close_event_queue() -> None:
    """Закрывает подключение к RabbitMQ."""
    queue = get_event_queue()
    await queue.disconnect()
    await log_info("RabbitMQ отключён", type_msg=TypeMsg.INFO)

# src/worker/runner.py
"""
Запускалка воркера приёма событий.
"""

from __future__ import annotations

import asyncio
from typing import List

from src.common.constants import TypeMsg
from src.common.logger import log_error, log_info
from src.infra.event_bus import close_event_queue, init_event_queue
from src.infra.storage import close_storage, init_storage
from src.worker.base import BaseWorker
from src.worker.intake import IntakeWorker


async def run_workers(init_infra: bool = True) -> None:
    """
    Запускает IntakeWorker.

    Args:
        init_infra: Если True, инициализирует инфраструктуру (хранилище, RabbitMQ).
                    В режиме all main.py инициализирует её сам и передаёт False.

    Note:
        Несколько процессов-воркеров безопасны: все записи условные.
    """
    await log_info("Запуск IntakeWorker...", type_msg=TypeMsg.INFO)

    if init_infra:
        await log_info("Инициализация инфраструктуры для воркеров...", type_msg=TypeMsg.DEBUG)
        await init_storage()
        await init_event_queue()

    workers: List[BaseWorker] = [
        IntakeWorker(),
    ]

    try:
        for worker in workers:
            await worker.start()

        await log_info(f"Запущено {len(workers)} воркеров", type_msg=TypeMsg.INFO)

        # Ждём завершения (Ctrl+C / SIGTERM)
        while True:
            await asyncio.sleep(1)

    except asyncio.CancelledError:
        await log_info("Получен сигнал остановки", type_msg=TypeMsg.INFO)
    except Exception as e:
        await log_error(f"Критическая ошибка: {e}", exc_info=True)
    finally:
        for worker in workers:
            await worker.stop()

        if init_infra:
            await close_event_queue()
            await close_storage()

        await log_info("Воркеры остановлены", type_msg=TypeMsg.INFO)


def main() -> None:
    """Точка входа."""
    try:
        asyncio.run(run_workers())
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()

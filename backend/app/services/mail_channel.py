"""
Mail Channel - Pooled outbound SMTP connections

A bounded set of aiosmtplib connections to one relay, shared by every
caller in the process. Connections are opened on demand up to
max_connections, reused while healthy and dropped after any failure.
Callers beyond the bound wait for a free connection.
"""

import asyncio
from email.message import EmailMessage
from typing import List, Optional, Protocol

import aiosmtplib

from app.core.logging_config import logger


class MailChannel(Protocol):
    """What the dispatcher needs from a delivery channel"""

    async def verify(self) -> None:
        """Raise if the relay cannot be reached or rejects our login"""
        ...

    async def send(self, message: EmailMessage) -> str:
        """Submit a message, return the provider message id"""
        ...

    async def close(self) -> None:
        ...


class SmtpMailChannel:
    """aiosmtplib-backed MailChannel with a bounded connection pool"""

    def __init__(
        self,
        hostname: str,
        port: int,
        username: str = "",
        password: str = "",
        use_tls: bool = False,
        timeout: float = 30.0,
        validate_certs: bool = True,
        max_connections: int = 5,
    ):
        self.hostname = hostname
        self.port = port
        self.username = username
        self.password = password
        self.use_tls = use_tls
        self.timeout = timeout
        self.validate_certs = validate_certs
        self.max_connections = max_connections

        self._slots = asyncio.Semaphore(max_connections)
        self._idle: List[aiosmtplib.SMTP] = []
        self._closed = False

        logger.info(
            f"[MailChannel] Pool for {hostname}:{port} "
            f"({'TLS' if use_tls else 'STARTTLS if offered'}, max {max_connections} connections)"
        )

    def _new_client(self) -> aiosmtplib.SMTP:
        return aiosmtplib.SMTP(
            hostname=self.hostname,
            port=self.port,
            username=self.username or None,
            password=self.password or None,
            use_tls=self.use_tls,
            timeout=self.timeout,
            validate_certs=self.validate_certs,
        )

    async def _acquire(self) -> aiosmtplib.SMTP:
        while self._idle:
            client = self._idle.pop()
            if client.is_connected:
                try:
                    await client.noop()
                    return client
                except aiosmtplib.SMTPException:
                    pass
            await self._discard(client)

        # connect() also performs STARTTLS and login when configured
        client = self._new_client()
        try:
            await client.connect()
        except BaseException:
            client.close()
            raise
        return client

    def _release(self, client: aiosmtplib.SMTP) -> None:
        self._idle.append(client)

    @staticmethod
    async def _discard(client: aiosmtplib.SMTP) -> None:
        if client.is_connected:
            try:
                await client.quit()
            except aiosmtplib.SMTPException:
                client.close()

    async def verify(self) -> None:
        async with self._slots:
            client = await self._acquire()
            self._release(client)

    async def send(self, message: EmailMessage) -> str:
        if self._closed:
            raise aiosmtplib.SMTPServerDisconnected("Mail channel is closed")

        async with self._slots:
            client: Optional[aiosmtplib.SMTP] = None
            try:
                client = await self._acquire()
                await client.send_message(message)
            except BaseException:
                if client is not None:
                    client.close()
                raise
            self._release(client)

        return message["Message-ID"]

    async def close(self) -> None:
        self._closed = True
        idle, self._idle = self._idle, []
        for client in idle:
            await self._discard(client)
        logger.info(f"[MailChannel] Closed {len(idle)} pooled connection(s)")

"""Tests unitaires pour le module retry."""

import pytest

from app.core.retry import retry_async_operation


class TestRetryAsyncOperation:
    """Tests pour retry_async_operation."""

    @pytest.mark.asyncio
    async def test_retry_operation_success(self):
        """Test retry d'une opération réussie."""

        async def operation(value: int):
            return value * 2

        result = await retry_async_operation(operation, 21, max_attempts=3)
        assert result == 42

    @pytest.mark.asyncio
    async def test_retry_operation_with_kwargs(self):
        """Test retry avec arguments keyword."""

        async def operation(a: int, b: int):
            return a + b

        result = await retry_async_operation(operation, max_attempts=2, a=10, b=32)
        assert result == 42

    @pytest.mark.asyncio
    async def test_retry_operation_transient_then_success(self):
        """Test qu'une erreur transitoire est rejouée jusqu'au succès."""
        attempt_count = 0

        async def operation():
            nonlocal attempt_count
            attempt_count += 1
            if attempt_count == 1:
                raise ConnectionError("reset by peer")
            return "written"

        result = await retry_async_operation(
            operation, max_attempts=3, min_wait_seconds=0.01, exceptions=(ConnectionError,)
        )

        assert result == "written"
        assert attempt_count == 2

    @pytest.mark.asyncio
    async def test_retry_operation_reraises_last_error(self):
        async def operation():
            raise TimeoutError("still down")

        with pytest.raises(TimeoutError, match="still down"):
            await retry_async_operation(
                operation, max_attempts=2, min_wait_seconds=0.01, exceptions=(TimeoutError,)
            )

    @pytest.mark.asyncio
    async def test_retry_only_listed_exceptions(self):
        """Test qu'une exception hors liste n'est pas rejouée."""
        attempt_count = 0

        async def operation():
            nonlocal attempt_count
            attempt_count += 1
            raise ValueError("Bad input")

        with pytest.raises(ValueError):
            await retry_async_operation(
                operation, max_attempts=3, min_wait_seconds=0.01, exceptions=(OSError,)
            )

        assert attempt_count == 1

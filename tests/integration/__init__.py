"""
Tests d'intégration pour core-clinic-access.

Ces tests utilisent un vrai Redis sur un port exotique pour éviter les
conflits avec les services de développement; ils sont ignorés si Redis
n'est pas joignable.

Usage:
    docker-compose -f docker-compose.test.yaml up -d
    poetry run pytest -m integration
    docker-compose -f docker-compose.test.yaml down -v
"""

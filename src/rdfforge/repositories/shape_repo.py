"""Shape repository."""

from sqlalchemy import delete, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from rdfforge.models.shape import Shape, ShapeVersion


class ShapeRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, version_fields: dict | None = None, **kwargs) -> Shape:
        shape = Shape(**kwargs)
        self.session.add(shape)
        await self.session.flush()
        self.session.add(ShapeVersion(
            shape_id=shape.id,
            version=shape.version,
            content=shape.content,
            content_format=shape.content_format,
            **(version_fields or {}),
        ))
        await self.session.commit()
        await self.session.refresh(shape)
        return shape

    async def get_by_id(self, id: str) -> Shape | None:
        result = await self.session.execute(select(Shape).where(Shape.id == id))
        return result.scalar_one_or_none()

    async def get_by_uri(self, uri: str) -> Shape | None:
        result = await self.session.execute(select(Shape).where(Shape.uri == uri).limit(1))
        return result.scalar_one_or_none()

    async def find(
        self,
        search: str | None = None,
        category: str | None = None,
        is_template: bool | None = None,
        limit: int = 100,
        offset: int = 0,
    ) -> tuple[list[Shape], int]:
        query = select(Shape)
        if search:
            pattern = f"%{search}%"
            query = query.where(or_(
                Shape.name.ilike(pattern),
                Shape.uri.ilike(pattern),
                Shape.description.ilike(pattern),
                Shape.target_class.ilike(pattern),
            ))
        if category:
            query = query.where(Shape.category == category)
        if is_template is not None:
            query = query.where(Shape.is_template.is_(is_template))
        result = await self.session.execute(query.order_by(Shape.name))
        shapes = list(result.scalars().all())
        return shapes[offset:offset + limit], len(shapes)

    async def categories(self) -> list[str]:
        result = await self.session.execute(
            select(Shape.category).where(Shape.category.is_not(None)).distinct().order_by(Shape.category)
        )
        return [c for c in result.scalars().all()]

    async def update(self, shape: Shape, **kwargs) -> Shape:
        for key, value in kwargs.items():
            if value is not None:
                setattr(shape, key, value)
        await self.session.commit()
        await self.session.refresh(shape)
        return shape

    async def reload(self, shape: Shape) -> Shape:
        await self.session.refresh(shape)
        return shape

    async def bump_version(self, shape: Shape, expected_version: int, fields: dict, snapshot: dict) -> bool:
        """Compare-and-set the version counter and store the new snapshot."""
        result = await self.session.execute(
            update(Shape)
            .where(Shape.id == shape.id, Shape.version == expected_version)
            .values(version=expected_version + 1, **fields)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            await self.session.rollback()
            return False
        self.session.add(ShapeVersion(shape_id=shape.id, version=expected_version + 1, **snapshot))
        await self.session.commit()
        await self.session.refresh(shape)
        return True

    async def delete(self, shape: Shape) -> None:
        await self.session.execute(delete(ShapeVersion).where(ShapeVersion.shape_id == shape.id))
        await self.session.delete(shape)
        await self.session.commit()

    async def list_versions(self, shape_id: str) -> list[ShapeVersion]:
        result = await self.session.execute(
            select(ShapeVersion).where(ShapeVersion.shape_id == shape_id).order_by(ShapeVersion.version.desc())
        )
        return list(result.scalars().all())

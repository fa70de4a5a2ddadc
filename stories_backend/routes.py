"""
HTTP routes for the stories API.
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, File, Form, Query, UploadFile
from fastapi.concurrency import run_in_threadpool

from stories_backend.context import OperationContext
from stories_backend.dependencies import (
    CurrentUser,
    get_category_usecase,
    get_chapter_usecase,
    get_current_user,
    get_operation_context,
    get_preference_usecase,
    get_story_usecase,
    require_admin,
)
from stories_backend.media import Asset
from stories_backend.schemas import (
    CategoryResponse,
    ChapterResponse,
    CreateChapterRequest,
    MessageResponse,
    PreferencesResponse,
    SavePreferencesRequest,
    SlideResponse,
    StoryResponse,
)
from stories_backend.usecases import (
    CategoryUseCase,
    ChapterUseCase,
    PreferenceUseCase,
    StoryUseCase,
)

router = APIRouter()


async def _read_asset(upload: Optional[UploadFile]) -> Optional[Asset]:
    if upload is None or not upload.filename:
        return None
    data = await upload.read()
    if not data:
        return None
    return Asset(data=data, filename=upload.filename, content_type=upload.content_type)


# Categories


@router.get("/categories", response_model=list[CategoryResponse])
def list_categories(
    ctx: OperationContext = Depends(get_operation_context),
    uc: CategoryUseCase = Depends(get_category_usecase),
):
    return [CategoryResponse.from_record(c) for c in uc.get_all(ctx)]


@router.get("/categories/{category_id}", response_model=CategoryResponse)
def get_category(
    category_id: str,
    ctx: OperationContext = Depends(get_operation_context),
    uc: CategoryUseCase = Depends(get_category_usecase),
):
    return CategoryResponse.from_record(uc.get(ctx, category_id))


@router.get("/search/categories", response_model=list[CategoryResponse])
def search_categories(
    q: str = Query(""),
    ctx: OperationContext = Depends(get_operation_context),
    uc: CategoryUseCase = Depends(get_category_usecase),
):
    return [CategoryResponse.from_record(c) for c in uc.search(ctx, q)]


@router.post("/admin/categories", response_model=CategoryResponse, status_code=201)
async def create_category(
    name: str = Form(...),
    image: Optional[UploadFile] = File(None),
    _admin: CurrentUser = Depends(require_admin),
    ctx: OperationContext = Depends(get_operation_context),
    uc: CategoryUseCase = Depends(get_category_usecase),
):
    asset = await _read_asset(image)
    category = await run_in_threadpool(uc.create, ctx, name, asset)
    return CategoryResponse.from_record(category)


@router.put("/admin/categories/{category_id}", response_model=CategoryResponse)
async def update_category(
    category_id: str,
    name: str = Form(""),
    image: Optional[UploadFile] = File(None),
    _admin: CurrentUser = Depends(require_admin),
    ctx: OperationContext = Depends(get_operation_context),
    uc: CategoryUseCase = Depends(get_category_usecase),
):
    asset = await _read_asset(image)
    category = await run_in_threadpool(uc.update, ctx, category_id, name, asset)
    return CategoryResponse.from_record(category)


@router.delete("/admin/categories/{category_id}", response_model=MessageResponse)
def delete_category(
    category_id: str,
    _admin: CurrentUser = Depends(require_admin),
    ctx: OperationContext = Depends(get_operation_context),
    uc: CategoryUseCase = Depends(get_category_usecase),
):
    uc.delete(ctx, category_id)
    return MessageResponse(message="category deleted successfully")


# Stories


@router.get("/stories", response_model=list[StoryResponse])
def list_stories(
    page: int = Query(1),
    limit: int = Query(10),
    sort: str = Query("created_at desc"),
    ctx: OperationContext = Depends(get_operation_context),
    uc: StoryUseCase = Depends(get_story_usecase),
):
    return [StoryResponse.from_record(s) for s in uc.get_all(ctx, page, limit, sort)]


@router.get("/stories/{story_id}", response_model=StoryResponse)
def get_story(
    story_id: str,
    ctx: OperationContext = Depends(get_operation_context),
    uc: StoryUseCase = Depends(get_story_usecase),
):
    return StoryResponse.from_record(uc.get(ctx, story_id))


@router.get("/search/stories", response_model=list[StoryResponse])
def search_stories(
    q: str = Query(""),
    ctx: OperationContext = Depends(get_operation_context),
    uc: StoryUseCase = Depends(get_story_usecase),
):
    return [StoryResponse.from_record(s) for s in uc.search(ctx, q)]


@router.post("/admin/stories", response_model=StoryResponse, status_code=201)
async def create_story(
    title: str = Form(...),
    description: str = Form(...),
    category_id: str = Form(...),
    file: Optional[UploadFile] = File(None),
    admin: CurrentUser = Depends(require_admin),
    ctx: OperationContext = Depends(get_operation_context),
    uc: StoryUseCase = Depends(get_story_usecase),
):
    asset = await _read_asset(file)
    story = await run_in_threadpool(
        uc.create, ctx, title, description, category_id, admin.user_id, asset
    )
    return StoryResponse.from_record(story)


@router.put("/admin/stories/{story_id}", response_model=StoryResponse)
async def update_story(
    story_id: str,
    title: str = Form(""),
    description: str = Form(""),
    category_id: str = Form(""),
    status: str = Form(""),
    file: Optional[UploadFile] = File(None),
    _admin: CurrentUser = Depends(require_admin),
    ctx: OperationContext = Depends(get_operation_context),
    uc: StoryUseCase = Depends(get_story_usecase),
):
    asset = await _read_asset(file)
    story = await run_in_threadpool(
        uc.update, ctx, story_id, title, description, category_id, status, asset
    )
    return StoryResponse.from_record(story)


@router.delete("/admin/stories/{story_id}", response_model=MessageResponse)
def delete_story(
    story_id: str,
    _admin: CurrentUser = Depends(require_admin),
    ctx: OperationContext = Depends(get_operation_context),
    uc: StoryUseCase = Depends(get_story_usecase),
):
    uc.delete(ctx, story_id)
    return MessageResponse(message="story deleted successfully")


@router.post("/admin/stories/{story_id}/slides", response_model=SlideResponse, status_code=201)
async def add_story_slide(
    story_id: str,
    content: str = Form(...),
    sequence: int = Form(...),
    file: Optional[UploadFile] = File(None),
    audio: Optional[UploadFile] = File(None),
    _admin: CurrentUser = Depends(require_admin),
    ctx: OperationContext = Depends(get_operation_context),
    uc: StoryUseCase = Depends(get_story_usecase),
):
    image_asset = await _read_asset(file)
    audio_asset = await _read_asset(audio)
    slide = await run_in_threadpool(
        uc.add_slide, ctx, story_id, content, sequence, image_asset, audio_asset
    )
    return SlideResponse.from_record(slide)


# Chapters


@router.get("/chapters/{chapter_id}", response_model=ChapterResponse)
def get_chapter(
    chapter_id: str,
    ctx: OperationContext = Depends(get_operation_context),
    uc: ChapterUseCase = Depends(get_chapter_usecase),
):
    return ChapterResponse.from_record(uc.get(ctx, chapter_id))


@router.post("/admin/chapters", response_model=ChapterResponse, status_code=201)
def create_chapter(
    payload: CreateChapterRequest,
    _admin: CurrentUser = Depends(require_admin),
    ctx: OperationContext = Depends(get_operation_context),
    uc: ChapterUseCase = Depends(get_chapter_usecase),
):
    return ChapterResponse.from_record(uc.create(ctx, payload.story_id))


@router.delete("/admin/chapters/{chapter_id}", response_model=MessageResponse)
def delete_chapter(
    chapter_id: str,
    _admin: CurrentUser = Depends(require_admin),
    ctx: OperationContext = Depends(get_operation_context),
    uc: ChapterUseCase = Depends(get_chapter_usecase),
):
    uc.delete(ctx, chapter_id)
    return MessageResponse(message="chapter deleted successfully")


@router.post(
    "/admin/chapters/{chapter_id}/slides", response_model=SlideResponse, status_code=201
)
async def add_chapter_slide(
    chapter_id: str,
    content: str = Form(...),
    sequence: int = Form(...),
    image: UploadFile = File(...),
    audio: Optional[UploadFile] = File(None),
    _admin: CurrentUser = Depends(require_admin),
    ctx: OperationContext = Depends(get_operation_context),
    uc: ChapterUseCase = Depends(get_chapter_usecase),
):
    image_asset = await _read_asset(image)
    audio_asset = await _read_asset(audio)
    slide = await run_in_threadpool(
        uc.add_slide, ctx, chapter_id, content, sequence, image_asset, audio_asset
    )
    return SlideResponse.from_record(slide)


# Preferences


@router.post("/preferences", response_model=PreferencesResponse)
def save_preferences(
    payload: SavePreferencesRequest,
    user: CurrentUser = Depends(get_current_user),
    ctx: OperationContext = Depends(get_operation_context),
    uc: PreferenceUseCase = Depends(get_preference_usecase),
):
    saved = uc.save(
        ctx,
        user.user_id,
        payload.story_categories,
        payload.dakwah_categories,
        payload.hadist_categories,
    )
    return PreferencesResponse.from_choices(saved)


@router.get("/preferences", response_model=PreferencesResponse)
def get_preferences(
    user: CurrentUser = Depends(get_current_user),
    ctx: OperationContext = Depends(get_operation_context),
    uc: PreferenceUseCase = Depends(get_preference_usecase),
):
    return PreferencesResponse.from_choices(uc.get(ctx, user.user_id))
